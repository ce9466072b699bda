"""
Database layer — SQLAlchemy models and session factory.

Tables:
    users              mirror of auth provider identities + roles
    products           catalog
    cart_items         unique (user_id, product_id), quantity >= 1
    orders             unique payment_reference
    order_items        price_at_purchase frozen per line
    checkout_attempts  idempotency records for checkout finalisation
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from storefront.idempotency import IdempotencyMixin, SQLAlchemyStore


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


Money = Numeric(12, 2)


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Users & Catalog
# ═══════════════════════════════════════════════════════════════════════════════


class UserTable(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class ProductTable(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, server_default=func.now()
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


class CartItemTable(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product: Mapped[ProductTable] = relationship(lazy="raise")


# ═══════════════════════════════════════════════════════════════════════════════
# Orders
# ═══════════════════════════════════════════════════════════════════════════════


class OrderTable(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    order_name: Mapped[str] = mapped_column(String(200), nullable=False)
    payment_reference: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    gateway_order_id: Mapped[str] = mapped_column(String(100), nullable=False)

    items: Mapped[list[OrderItemTable]] = relationship(
        back_populates="order", lazy="raise", order_by="OrderItemTable.id"
    )


class OrderItemTable(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_at_purchase: Mapped[Decimal] = mapped_column(Money, nullable=False)

    order: Mapped[OrderTable] = relationship(back_populates="items", lazy="raise")
    product: Mapped[ProductTable] = relationship(lazy="raise")


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout Attempts — with IdempotencyMixin
# ═══════════════════════════════════════════════════════════════════════════════


class CheckoutAttemptTable(Base, IdempotencyMixin):
    """
    One row per payment key, owned by the user who finalised it.

    Note: the unique idempotency_key is what collapses duplicate callbacks
    (back-button replays, double submits) into a single pipeline run.
    """

    __tablename__ = "checkout_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, server_default=func.now()
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Dialect helpers
# ═══════════════════════════════════════════════════════════════════════════════


def upsert_for(session: AsyncSession, table: Any) -> Any:
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"ON CONFLICT not supported for dialect: {dialect}")


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


def create_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(url)


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    engine = create_engine(url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


def attempt_store(
    session_factory: async_sessionmaker[AsyncSession],
) -> SQLAlchemyStore[CheckoutAttemptTable]:
    """Idempotency store backed by checkout_attempts."""
    return SQLAlchemyStore(
        session_factory,
        model=CheckoutAttemptTable,
        to_insert=lambda session, values: (
            upsert_for(session, CheckoutAttemptTable)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        ),
    )


__all__ = (
    "Base",
    "utcnow",
    "UserTable",
    "ProductTable",
    "CartItemTable",
    "OrderTable",
    "OrderItemTable",
    "CheckoutAttemptTable",
    "upsert_for",
    "attempt_store",
    "create_engine",
    "create_database",
)
