"""
Graph runner — thin layer over nodnod.

The target node pulls in every node it depends on. Inputs are pushed into
a fresh scope per run, so concurrent runs never share state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


# ═══════════════════════════════════════════════════════════════════════════════
# TypedScope
# ═══════════════════════════════════════════════════════════════════════════════


class TypedScope:
    """Typed access to a nodnod Scope."""

    __slots__ = ("_scope",)

    def __init__(self, scope: Scope | None = None, detail: str = "scope") -> None:
        self._scope = scope if scope is not None else Scope(detail=detail)

    @property
    def inner(self) -> Scope:
        return self._scope

    def inject[T](self, typ: type[T], value: T) -> TypedScope:
        self._scope.push(Value(typ, value))
        return self

    def get[T](self, typ: type[T]) -> T:
        found = self._scope.get(typ)
        if found is None:
            raise KeyError(f"{typ.__name__} was not resolved in scope")
        return cast(T, found.value)

    async def __aenter__(self) -> TypedScope:
        await self._scope.__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._scope.__aexit__(*args)


# ═══════════════════════════════════════════════════════════════════════════════
# Run
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class Run[T]:
    """
    Awaitable run of a target node.

        node = await run(FinalGuardNode).inject(spec)
        node = await run(FinalGuardNode).inject_as(GuardSpec, spec)
    """

    _target: type[T]
    _injections: tuple[tuple[type[Any], Any], ...]

    def inject(self, value: object) -> Run[T]:
        """Inject under the value's runtime type."""
        return self.inject_as(cast(type[Any], type(value)), value)

    def inject_as[V](self, typ: type[V], value: V) -> Run[T]:
        pair: tuple[type[Any], Any] = (typ, value)
        return Run(_target=self._target, _injections=(*self._injections, pair))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        nodes: set[type[Node[Any, Any]]] = {cast(type[Node[Any, Any]], self._target)}
        agent = EventLoopAgent.build(nodes)

        async with TypedScope(detail=self._target.__name__) as scope:
            for typ, value in self._injections:
                scope.inject(typ, value)

            run_agent = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(agent, "run"),
            )
            await run_agent(scope.inner, {})

            return scope.get(self._target)


def run[T](target: type[T]) -> Run[T]:
    return Run(_target=target, _injections=())


__all__ = ("TypedScope", "Run", "run")
