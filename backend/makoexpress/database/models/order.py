"""
Order model for delivery lifecycle tracking.

This module defines the delivery Order together with its append-only status
history. The authoritative current state lives on Order.status; the history
table is an audit trail replayed by the tracking view.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from makoexpress.database.base import Base, BaseModel, create_table_args


class OrderStatus(str, enum.Enum):
    """
    Order status enumeration for tracking the delivery lifecycle.

    Attributes:
        PENDING: Created, waiting for a driver
        ACCEPTED: A driver committed to the job
        PICKED_UP: Package collected from the sender
        IN_TRANSIT: Driver en route to the recipient
        DELIVERED: Package handed over (terminal)
        CANCELLED: Cancelled before any driver accepted (terminal)
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Urgency(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    URGENT = "urgent"


class PaymentMethod(str, enum.Enum):
    MAKOPAY = "makopay"
    CASH = "cash"
    CARD = "card"


class Order(BaseModel):
    """
    Delivery order.

    Attributes:
        tracking_number: Human-shareable unique identifier
        customer_id: User who placed the order
        driver_id: Assigned driver, null while the order is pending
        pickup_address: Where the package is collected
        delivery_address: Where the package is delivered
        package_type: Kind of package
        weight: Declared weight, free text (e.g. "2kg")
        urgency: Delivery urgency class
        price: Delivery price, fixed at creation
        status: Current lifecycle status
        payment_status: Customer payment status
        payment_method: How the customer pays
        payment_transaction_id: Gateway transaction for the customer charge
        notes: Free-text notes
        customer_phone: Contact phone for the delivery
        delivery_instructions: Instructions for the driver
        estimated_delivery_time: Estimated delivery time
        delivered_at: Stamped once, on transition into delivered
    """

    __tablename__ = "orders"

    tracking_number: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True,
        comment="Human-shareable tracking number",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="User who placed the order",
    )

    driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("drivers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
        comment="Assigned driver",
    )

    pickup_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)

    package_type: Mapped[str] = mapped_column(String(50), nullable=False)
    weight: Mapped[str] = mapped_column(String(50), nullable=False)

    urgency: Mapped[Urgency] = mapped_column(
        SQLEnum(Urgency, name="order_urgency", create_constraint=True),
        nullable=False,
        default=Urgency.STANDARD,
        comment="Delivery urgency class",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Delivery price in platform currency",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", create_constraint=True),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current lifecycle status",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", create_constraint=True),
        nullable=False,
        default=PaymentStatus.PENDING,
        comment="Customer payment status",
    )

    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method", create_constraint=True),
        nullable=True,
    )

    payment_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Gateway transaction for the customer charge",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    estimated_delivery_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Stamped on transition into delivered",
    )

    __table_args__ = create_table_args(
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        Index("ix_orders_status_driver", "status", "driver_id"),
        CheckConstraint("price > 0", name="ck_orders_price_positive"),
        CheckConstraint(
            "status = 'PENDING' OR status = 'CANCELLED' OR driver_id IS NOT NULL",
            name="ck_orders_driver_assigned",
        ),
        comment="Delivery orders",
    )

    @property
    def is_assigned(self) -> bool:
        return self.driver_id is not None


class OrderStatusHistory(Base):
    """
    One immutable row per status transition.

    Rows are appended by the status ledger and never updated or deleted.
    The integer key preserves append order for entries sharing a timestamp.
    """

    __tablename__ = "order_status_history"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="Order the transition belongs to",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", create_constraint=True),
        nullable=False,
        comment="Status entered",
    )

    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Server time of the transition",
    )

    __table_args__ = create_table_args(
        Index("ix_order_status_history_order_ts", "order_id", "timestamp", "id"),
        comment="Append-only order status transitions",
    )
