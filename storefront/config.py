"""
Configuration — read once from the environment.

`.env` is loaded via python-dotenv, then every field falls back to a
default suitable for local development.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _flag(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./storefront.db"

    # Payment gateway
    gateway_base_url: str = "https://api.tosspayments.com"
    gateway_secret_key: str = ""
    gateway_timeout: float = 10.0

    # Sessions
    session_secret: str = "change-me"
    session_cookie: str = "sb-session"

    # Checkout pipeline
    storage_timeout: float = 10.0
    retry_times: int = 3
    retry_delay: float = 0.2
    idempotency_ttl: float = 86400.0
    pending_wait: float = 30.0
    cancel_on_failure: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> Settings:
        if dotenv:
            load_dotenv()
        env = os.getenv
        defaults = cls()
        return cls(
            database_url=env("STOREFRONT_DATABASE_URL", defaults.database_url),
            gateway_base_url=env("TOSS_API_BASE", defaults.gateway_base_url),
            gateway_secret_key=env("TOSS_SECRET_KEY", defaults.gateway_secret_key),
            gateway_timeout=float(env("STOREFRONT_GATEWAY_TIMEOUT", defaults.gateway_timeout)),
            session_secret=env("STOREFRONT_SESSION_SECRET", defaults.session_secret),
            session_cookie=env("STOREFRONT_SESSION_COOKIE", defaults.session_cookie),
            storage_timeout=float(env("STOREFRONT_STORAGE_TIMEOUT", defaults.storage_timeout)),
            retry_times=int(env("STOREFRONT_RETRY_TIMES", defaults.retry_times)),
            retry_delay=float(env("STOREFRONT_RETRY_DELAY", defaults.retry_delay)),
            idempotency_ttl=float(env("STOREFRONT_IDEMPOTENCY_TTL", defaults.idempotency_ttl)),
            pending_wait=float(env("STOREFRONT_PENDING_WAIT", defaults.pending_wait)),
            cancel_on_failure=_flag(env("STOREFRONT_CANCEL_ON_FAILURE"), defaults.cancel_on_failure),
            log_level=env("STOREFRONT_LOG_LEVEL", defaults.log_level),
            log_json=_flag(env("STOREFRONT_LOG_JSON"), defaults.log_json),
        )


__all__ = ("Settings",)
