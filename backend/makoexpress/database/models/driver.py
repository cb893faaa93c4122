"""
Driver profile model.

A driver profile belongs to exactly one user and carries the identity
documents, approval status, availability and equipment flags of a courier.
The commission tier is never stored: it is derived from the GPS equipment and
insurance flags so that the two can never disagree.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
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
from makoexpress.services.commission.calculator import EquipmentTier, resolve_tier


class DriverStatus(str, enum.Enum):
    """
    Driver approval status.

    Attributes:
        PENDING: Application submitted, awaiting review
        APPROVED: Allowed to accept orders
        REJECTED: Application refused
        SUSPENDED: Temporarily barred by an admin
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class VehicleType(str, enum.Enum):
    MOTO = "moto"
    BICYCLE = "bicycle"
    CAR = "car"
    VAN = "van"


class Driver(BaseModel):
    """
    Driver profile.

    Attributes:
        user_id: Owning user (one profile per user)
        full_name: Legal name as on the identity document
        age: Driver age
        vehicle_type: Vehicle used for deliveries
        phone: Contact and mobile-money phone number
        makopay_id: MakoPay wallet identifier used for payouts
        drivers_license_url: Driver's license document reference
        vehicle_registration_url: Vehicle registration document reference
        insurance_certificate_url: Insurance certificate document reference
        medical_certificate_url: Medical certificate document reference
        status: Approval status, changed by admins
        rejection_reason: Reason given when the application was rejected
        approved_at: When the driver was approved
        is_online: Availability flag
        rating: Average customer rating (0-5)
        total_deliveries: Completed deliveries count
        has_gps_equipment: GPS delivery bag issued
        has_insurance: Professional insurance issued
        has_uniform: Uniform issued (benefit only, never affects the rate)
    """

    __tablename__ = "drivers"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
        comment="Owning user",
    )

    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Legal name",
    )

    age: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Driver age",
    )

    vehicle_type: Mapped[VehicleType] = mapped_column(
        SQLEnum(VehicleType, name="vehicle_type", create_constraint=True),
        nullable=False,
        comment="Vehicle used for deliveries",
    )

    city: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Operating city",
    )

    phone: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Contact and mobile-money phone number",
    )

    makopay_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="MakoPay wallet identifier",
    )

    # Documents
    drivers_license_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    vehicle_registration_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    insurance_certificate_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    medical_certificate_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Verification
    status: Mapped[DriverStatus] = mapped_column(
        SQLEnum(DriverStatus, name="driver_status", create_constraint=True),
        nullable=False,
        default=DriverStatus.PENDING,
        index=True,
        comment="Approval status",
    )

    rejection_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Reason given on rejection",
    )

    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Approval timestamp",
    )

    # Performance
    is_online: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Availability flag",
    )

    rating: Mapped[Decimal] = mapped_column(
        Numeric(precision=3, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Average customer rating",
    )

    total_deliveries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Completed deliveries",
    )

    # Equipment
    has_gps_equipment: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="GPS delivery bag issued",
    )

    has_insurance: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Professional insurance issued",
    )

    has_uniform: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Uniform issued",
    )

    __table_args__ = create_table_args(
        Index("ix_drivers_status_online", "status", "is_online"),
        CheckConstraint("age >= 18", name="ck_drivers_adult"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_drivers_rating_range"),
        CheckConstraint("total_deliveries >= 0", name="ck_drivers_deliveries_non_negative"),
        comment="Driver profiles, documents and equipment",
    )

    @property
    def equipment_tier(self) -> EquipmentTier:
        """Premium if and only if GPS equipment and insurance are both issued."""
        return resolve_tier(bool(self.has_gps_equipment), bool(self.has_insurance))

    @property
    def commission_rate(self) -> Decimal:
        return self.equipment_tier.commission_rate

    @property
    def is_approved(self) -> bool:
        return self.status == DriverStatus.APPROVED
