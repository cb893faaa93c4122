"""
Database models package initialization.

This module exports all database models for SQLAlchemy and Alembic auto-generation.
Models are imported here to ensure they are registered with the Base metadata
for proper migration generation and relationship resolution.
"""

from makoexpress.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from makoexpress.database.models.driver import Driver, DriverStatus, VehicleType
from makoexpress.database.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    PaymentStatus,
    Urgency,
)
from makoexpress.database.models.rating import DriverRating
from makoexpress.database.models.settlement import PayoutStatus, Settlement, payout_reference
from makoexpress.database.models.user import User, UserRole

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Driver",
    "DriverRating",
    "DriverStatus",
    "Order",
    "OrderStatus",
    "OrderStatusHistory",
    "PaymentMethod",
    "PaymentStatus",
    "PayoutStatus",
    "Settlement",
    "Urgency",
    "User",
    "UserRole",
    "VehicleType",
    "payout_reference",
]
