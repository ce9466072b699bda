"""
Request dependencies — services container, session user, error mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from storefront import shop
from storefront.api._schemas import ErrorOut
from storefront.auth import decode_session_token, load_user
from storefront.checkout import CheckoutPipeline
from storefront.config import Settings
from storefront.domain import ShopError, ShopErrors, User


@dataclass(frozen=True, slots=True)
class Services:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    gateway: httpx.AsyncClient
    catalog: shop.Catalog
    cart: shop.Cart
    orders: shop.OrderHistory
    users: shop.Users
    pipeline: CheckoutPipeline


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


UNAUTHORIZED = "UNAUTHORIZED"

STATUS_BY_CODE: dict[str, int] = {
    ShopErrors.INVALID: 400,
    UNAUTHORIZED: 401,
    ShopErrors.FORBIDDEN: 403,
    ShopErrors.NOT_FOUND: 404,
    ShopErrors.STORAGE: 500,
}


class ApiError(Exception):
    def __init__(self, error: ShopError) -> None:
        super().__init__(error.message)
        self.error = error

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE.get(self.error.code, 500)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    body = ErrorOut(error=exc.error.message, code=exc.error.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def ok_or_raise[T](result: Result[T, ShopError]) -> T:
    match result:
        case Ok(value):
            return value
        case Error(e):
            raise ApiError(e)


# ═══════════════════════════════════════════════════════════════════════════════
# Dependencies
# ═══════════════════════════════════════════════════════════════════════════════


def get_services(request: Request) -> Services:
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


async def current_user(request: Request, services: ServicesDep) -> User:
    """User named by the session cookie. Anything short of a known user is a 401."""
    unauthorized = ApiError(ShopError(UNAUTHORIZED, "Unauthorized"))

    token = request.cookies.get(services.settings.session_cookie)
    if not token:
        raise unauthorized
    user_id = decode_session_token(token, services.settings.session_secret)
    if user_id is None:
        raise unauthorized

    match await load_user(services.session_factory, user_id):
        case Ok(user):
            return user
        case Error(e) if e.code == ShopErrors.NOT_FOUND:
            raise unauthorized
        case Error(e):
            raise ApiError(e)


UserDep = Annotated[User, Depends(current_user)]


__all__ = (
    "Services",
    "ServicesDep",
    "UserDep",
    "ApiError",
    "api_error_handler",
    "ok_or_raise",
    "current_user",
    "get_services",
)
