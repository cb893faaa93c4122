"""
Declarative base and shared columns for MAKOEXPRESS models.

Every persisted entity except the status history ledger gets a UUID primary
key plus database-managed ``created_at``/``updated_at`` through ``BaseModel``.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    __abstract__ = True

    def __repr__(self) -> str:
        keys = ", ".join(
            f"{column.name}={getattr(self, column.name, None)!r}"
            for column in self.__table__.primary_key.columns
        )
        return f"<{type(self).__name__}({keys})>"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class UUIDMixin:
    """Native UUID on PostgreSQL, CHAR(32) on SQLite."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class BaseModel(Base, UUIDMixin, TimestampMixin):
    __abstract__ = True
    # Async sessions cannot lazy load, so server-side timestamps are fetched on flush
    __mapper_args__ = {"eager_defaults": True}


def create_table_args(*constraints: Any, comment: Optional[str] = None) -> tuple:
    """
    Build ``__table_args__`` from constraints plus an optional table comment.

    Example:
        __table_args__ = create_table_args(
            CheckConstraint("price > 0", name="ck_orders_price_positive"),
            comment="Delivery orders",
        )
    """
    return (*constraints, {"comment": comment} if comment else {})
