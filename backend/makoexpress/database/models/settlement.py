"""
Settlement record model.

One settlement is written per delivered order at the moment of delivery. The
commission breakdown columns record the rate and amounts actually applied and
are never modified afterwards; only the payout tracking columns change as the
driver transfer progresses.
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
)
from sqlalchemy.orm import Mapped, mapped_column

from makoexpress.database.base import BaseModel, create_table_args
from makoexpress.services.commission.calculator import EquipmentTier


class PayoutStatus(str, enum.Enum):
    """
    Driver payout status.

    Attributes:
        PENDING: Transfer not yet confirmed by the gateway
        COMPLETED: Transfer confirmed
        FAILED: Transfer failed or gateway unavailable; needs a retry
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def payout_reference(driver_id: uuid.UUID, order_id: uuid.UUID) -> str:
    """Transfer reference, unique per (driver, order) so retries never pay twice."""
    return f"DRIVER_{driver_id}_{order_id}"


class Settlement(BaseModel):
    """
    Commission split and payout tracking for one delivered order.

    Attributes:
        order_id: Settled order (unique)
        driver_id: Driver being paid
        base_amount: Order price the split was computed from
        commission_rate: Rate applied
        commission_amount: Platform cut
        driver_earnings: Amount owed to the driver
        admin_earnings: Amount kept by the platform
        tier: Driver tier at settlement time
        payout_status: Transfer status
        payout_reference: Gateway reference, DRIVER_<driverId>_<orderId>
        payout_transaction_id: Gateway transaction id, once known
        payout_message: Last gateway message
        payout_attempts: Number of transfer requests issued
        paid_out_at: When the gateway confirmed the transfer
    """

    __tablename__ = "settlements"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        comment="Settled order",
    )

    driver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("drivers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Driver being paid",
    )

    # Applied commission breakdown
    base_amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(precision=3, scale=2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    driver_earnings: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    admin_earnings: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)

    tier: Mapped[EquipmentTier] = mapped_column(
        SQLEnum(EquipmentTier, name="equipment_tier", create_constraint=True),
        nullable=False,
        comment="Driver tier at settlement time",
    )

    # Payout tracking
    payout_status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus, name="payout_status", create_constraint=True),
        nullable=False,
        default=PayoutStatus.PENDING,
        index=True,
    )

    payout_reference: Mapped[str] = mapped_column(String(120), nullable=False)

    payout_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )

    payout_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payout_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    paid_out_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = create_table_args(
        Index("ix_settlements_driver_created", "driver_id", "created_at"),
        CheckConstraint("base_amount >= 0", name="ck_settlements_base_non_negative"),
        CheckConstraint("payout_attempts >= 0", name="ck_settlements_attempts_non_negative"),
        comment="Commission settlement and payout per delivered order",
    )
