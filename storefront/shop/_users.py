"""
Users — local mirror of the auth provider's identities and their roles.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error
from combinators import lift as L

from storefront.auth import to_user
from storefront.capabilities import Capability, has_capability
from storefront.db import UserTable, upsert_for
from storefront.domain import ShopError, ShopErrors, User, UserId


def _storage(e: Exception) -> ShopError:
    return ShopErrors.storage(f"User update failed: {e}")


class Users:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session = session_factory

    async def sync(
        self, user_id: UserId, email: str, roles: Iterable[str] = ()
    ) -> Result[User, ShopError]:
        """Insert or refresh a user as reported by the auth provider."""
        values = {"id": user_id.value, "email": email, "roles": sorted(set(roles))}

        async def do_sync() -> User:
            async with self._session() as session, session.begin():
                stmt = upsert_for(session, UserTable).values(**values)
                await session.execute(
                    stmt.on_conflict_do_update(
                        index_elements=["id"],
                        set_={"email": stmt.excluded.email, "roles": stmt.excluded.roles},
                    )
                )
            return User(id=user_id, email=email, roles=frozenset(values["roles"]))

        return await L.catching_async(do_sync, on_error=_storage)

    async def set_role(
        self, actor: User, target: UserId, role: str
    ) -> Result[User, ShopError]:
        """Replace the target's roles with exactly [role]. Requires MANAGE_ROLES."""
        if not has_capability(actor, Capability.MANAGE_ROLES):
            return Error(ShopErrors.forbidden("Only administrators can set user roles"))
        if not target.value or not role.strip():
            return Error(ShopErrors.invalid("User ID and role are required"))

        async def do_set() -> User | None:
            async with self._session() as session, session.begin():
                result = await session.execute(
                    update(UserTable)
                    .where(UserTable.id == target.value)
                    .values(roles=[role.strip()])
                )
                if not result.rowcount:
                    return None
                row = await session.get(UserTable, target.value, populate_existing=True)
                return to_user(row)

        match await L.catching_async(do_set, on_error=_storage):
            case Ok(None):
                return Error(ShopErrors.not_found("User", target.value))
            case Ok(user):
                return Ok(user)
            case Error(e):
                return Error(e)


__all__ = ("Users",)
