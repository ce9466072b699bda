"""
Authentication seam — session cookie to User.

The auth provider signs an HS256 JWT whose `sub` is the user id. Roles
are read from the local users table, never from the token.
"""

from __future__ import annotations

import time

import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront.db import UserTable
from storefront.domain import ShopError, ShopErrors, User, UserId

ALGORITHM = "HS256"


def issue_session_token(user_id: UserId, secret: str, *, ttl: int = 3600) -> str:
    now = int(time.time())
    return jwt.encode(
        {"sub": user_id.value, "iat": now, "exp": now + ttl},
        secret,
        algorithm=ALGORITHM,
    )


def decode_session_token(token: str, secret: str) -> UserId | None:
    """None for anything expired, tampered or missing `sub`."""
    try:
        claims = jwt.decode(
            token, secret, algorithms=[ALGORITHM], options={"require": ["sub"]}
        )
    except jwt.PyJWTError:
        return None
    return UserId(str(claims["sub"]))


def to_user(row: UserTable) -> User:
    return User(id=UserId(row.id), email=row.email, roles=frozenset(row.roles or ()))


async def load_user(
    session_factory: async_sessionmaker[AsyncSession], user_id: UserId
) -> Result[User, ShopError]:
    try:
        async with session_factory() as session:
            row = await session.get(UserTable, user_id.value)
    except SQLAlchemyError as e:
        return Error(ShopErrors.storage(f"User lookup failed: {e}"))
    if row is None:
        return Error(ShopErrors.not_found("User", user_id.value))
    return Ok(to_user(row))


__all__ = (
    "issue_session_token",
    "decode_session_token",
    "load_user",
    "to_user",
)
