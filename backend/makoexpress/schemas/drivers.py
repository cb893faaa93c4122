"""
Driver profile schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from makoexpress.database.models.driver import DriverStatus, VehicleType
from makoexpress.services.commission.calculator import EquipmentTier


class DriverRegisterRequest(BaseModel):
    """Driver application submitted by a signed-in user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=1, max_length=200)
    age: int = Field(..., ge=18, le=100)
    vehicle_type: VehicleType
    phone: str = Field(..., min_length=8, max_length=20)
    city: Optional[str] = Field(None, max_length=100)
    makopay_id: Optional[str] = Field(None, max_length=100)
    drivers_license_url: Optional[str] = Field(None, max_length=500)
    vehicle_registration_url: Optional[str] = Field(None, max_length=500)
    insurance_certificate_url: Optional[str] = Field(None, max_length=500)
    medical_certificate_url: Optional[str] = Field(None, max_length=500)


class DriverStatusUpdateRequest(BaseModel):
    status: DriverStatus
    rejection_reason: Optional[str] = Field(None, max_length=500)


class DriverEquipmentRequest(BaseModel):
    has_gps_equipment: bool = False
    has_insurance: bool = False
    has_uniform: bool = False


class DriverOnlineRequest(BaseModel):
    is_online: bool


class DriverResponse(BaseModel):
    """Driver profile response, including the derived tier."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    full_name: str
    age: int
    vehicle_type: VehicleType
    city: Optional[str] = None
    phone: str
    makopay_id: Optional[str] = None
    drivers_license_url: Optional[str] = None
    vehicle_registration_url: Optional[str] = None
    insurance_certificate_url: Optional[str] = None
    medical_certificate_url: Optional[str] = None
    status: DriverStatus
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    is_online: bool
    rating: Decimal
    total_deliveries: int
    has_gps_equipment: bool
    has_insurance: bool
    has_uniform: bool
    equipment_tier: EquipmentTier
    commission_rate: Decimal
    created_at: datetime


class TierInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tier: EquipmentTier
    name: str
    commission: str
    priority: str
    payout: str
    equipment: str
    benefits: list[str]


class TierResponse(BaseModel):
    """Current tier of a driver with the benefits it brings."""

    tier: EquipmentTier
    commission_rate: Decimal
    benefits: list[str]
    info: TierInfoResponse


class UpgradeEligibilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    eligible: bool
    status: DriverStatus
    current_tier: EquipmentTier
    missing_documents: list[str]
    standard: TierInfoResponse
    premium: TierInfoResponse


class DriverStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_deliveries: int
    rating: Decimal
    today_earnings: Decimal
    tier: EquipmentTier
    is_online: bool


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    driver_id: UUID
    rating: int
    comment: Optional[str] = None
    created_at: datetime
