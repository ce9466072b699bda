"""
Graph — nodnod dependency graphs with typed injection.

    from storefront import graph as G

    @G.node
    class FetchAttempt:
        @classmethod
        async def __compose__(cls, spec: GuardSpec) -> "FetchAttempt":
            return cls(await spec.store.get(spec.key))

    node = await G.run(FetchAttempt).inject(spec)
"""

from nodnod import scalar_node as node

from storefront.graph._run import TypedScope, Run, run

__all__ = (
    "node",
    "TypedScope",
    "Run",
    "run",
)
