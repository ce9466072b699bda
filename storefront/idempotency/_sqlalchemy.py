"""
SQLAlchemy integration — idempotency store over any model with the mixin.

Usage:
    1. Add IdempotencyMixin to your model:

        class CheckoutAttemptTable(Base, IdempotencyMixin):
            __tablename__ = "checkout_attempts"
            id: Mapped[int] = mapped_column(primary_key=True)

    2. Create store with a dialect-aware INSERT ... ON CONFLICT DO NOTHING:

        store = SQLAlchemyStore(
            session_factory,
            model=CheckoutAttemptTable,
            to_insert=lambda session, values: (
                sqlite_insert(CheckoutAttemptTable)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            ),
        )
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Generic, TypeVar, cast

from sqlalchemy import DateTime, String, Text, delete, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from kungfu import Result, Ok, Error

from storefront.idempotency._types import IdempotencyRecord, RecordState
from storefront.idempotency._store import StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Mixin — add to your SQLAlchemy model
# ═══════════════════════════════════════════════════════════════════════════════


class IdempotencyMixin:
    """
    Columns:
    - idempotency_key: unique key for deduplication
    - idempotency_status: "pending" | "completed"
    - idempotency_value: serialized result
    - idempotency_owner: who claimed the key
    - idempotency_expires_at: optional TTL
    """

    idempotency_key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    idempotency_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
    )

    idempotency_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    idempotency_owner: Mapped[str] = mapped_column(String(64), nullable=False)

    idempotency_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )


class IdempotencyStatus:
    """Values of the idempotency_status column."""

    PENDING = "pending"
    COMPLETED = "completed"


M = TypeVar("M", bound=IdempotencyMixin)


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore(Generic[M]):
    """
    Idempotency store for SQLAlchemy models. Values are stored as text.

    Note: atomicity of set_pending comes from the unique idempotency_key
    plus ON CONFLICT DO NOTHING, so it holds across processes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[M],
        to_insert: Callable[[AsyncSession, dict[str, Any]], Any],
    ) -> None:
        """
        Args:
            session_factory: SQLAlchemy async session factory
            model: Model class with IdempotencyMixin
            to_insert: (session, column values) → INSERT ... ON CONFLICT DO NOTHING
        """
        self._session_factory = session_factory
        self._model = model
        self._to_insert = to_insert

    async def get(self, key: str) -> Result[IdempotencyRecord[str] | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await self._find(session, key)
                if row is None:
                    return Ok(None)
                record = self._to_record(row)
                return Ok(None if record.is_expired else record)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to get: {e}", e))

    async def set_pending(
        self,
        key: str,
        owner: str,
        ttl: timedelta | None,
    ) -> Result[bool, StoreError]:
        now = datetime.now()
        model = self._model
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(model).where(
                        model.idempotency_key == key,
                        model.idempotency_expires_at.is_not(None),
                        model.idempotency_expires_at < now,
                    )
                )
                stmt = self._to_insert(session, {
                    "idempotency_key": key,
                    "idempotency_status": IdempotencyStatus.PENDING,
                    "idempotency_owner": owner,
                    "idempotency_expires_at": now + ttl if ttl else None,
                })
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                return Ok(cursor.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to set pending: {e}", e))

    async def set_completed(
        self,
        key: str,
        value: str,
        ttl: timedelta | None,
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session, session.begin():
                row = await self._find(session, key)
                if row is None:
                    return Error(StoreError(f"Record not found: {key}"))

                row.idempotency_status = IdempotencyStatus.COMPLETED
                row.idempotency_value = value
                row.idempotency_expires_at = datetime.now() + ttl if ttl else None
                return Ok(None)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to complete: {e}", e))

    async def delete(self, key: str) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session, session.begin():
                cursor = cast(
                    CursorResult[Any],
                    await session.execute(
                        delete(self._model).where(self._model.idempotency_key == key)
                    ),
                )
                return Ok(cursor.rowcount > 0)
        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to delete: {e}", e))

    async def _find(self, session: AsyncSession, key: str) -> M | None:
        result = await session.execute(
            select(self._model).where(self._model.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_record(row: IdempotencyMixin) -> IdempotencyRecord[str]:
        state = (
            RecordState.COMPLETED
            if row.idempotency_status == IdempotencyStatus.COMPLETED
            else RecordState.PENDING
        )
        return IdempotencyRecord(
            key=row.idempotency_key,
            state=state,
            value=row.idempotency_value,
            owner=row.idempotency_owner,
            expires_at=row.idempotency_expires_at,
        )


__all__ = (
    "IdempotencyMixin",
    "IdempotencyStatus",
    "SQLAlchemyStore",
)
