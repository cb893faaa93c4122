"""
Driver profile service.

Covers driver applications, admin review, availability, equipment issuance
and the premium-upgrade view. Issuing the GPS bag together with insurance is
what moves a driver to the premium tier, so that combination is only granted
to drivers who pass the upgrade eligibility gate.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.driver import Driver, DriverStatus, VehicleType
from makoexpress.database.models.user import User, UserRole
from makoexpress.services.commission.calculator import EquipmentTier, resolve_tier
from makoexpress.services.commission.tiers import (
    TierInfo,
    can_upgrade_to_premium,
    get_equipment_tier_info,
    missing_documents,
)
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.orders.service import start_of_day
from makoexpress.services.payments.repository import SettlementRepository

logger = get_logger(__name__)

MINIMUM_DRIVER_AGE = 18


class DriverServiceError(Exception):
    """Base exception for driver service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class DriverNotFoundError(DriverServiceError):
    pass


class DriverValidationError(DriverServiceError):
    pass


class TierUpgradeNotAllowedError(DriverServiceError):
    """Raised when premium equipment is issued to an ineligible driver."""

    pass


@dataclass
class UpgradeEligibility:
    eligible: bool
    status: DriverStatus
    current_tier: EquipmentTier
    missing_documents: list[str]
    standard: TierInfo
    premium: TierInfo


@dataclass
class DriverStats:
    total_deliveries: int
    rating: Decimal
    today_earnings: Decimal
    tier: EquipmentTier
    is_online: bool


class DriverService:
    """Driver profile operations for drivers and admins."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = DriverRepository(session)

    async def register_driver(
        self,
        user_id: uuid.UUID,
        full_name: str,
        age: int,
        vehicle_type: VehicleType,
        phone: str,
        city: Optional[str] = None,
        makopay_id: Optional[str] = None,
        drivers_license_url: Optional[str] = None,
        vehicle_registration_url: Optional[str] = None,
        insurance_certificate_url: Optional[str] = None,
        medical_certificate_url: Optional[str] = None,
    ) -> Driver:
        """
        Create the driver profile for a user; a user can own only one.

        Raises:
            DriverValidationError: If the applicant is under age
            DriverServiceError: If the user is unknown or already a driver
        """
        if age < MINIMUM_DRIVER_AGE:
            raise DriverValidationError(
                f"Drivers must be at least {MINIMUM_DRIVER_AGE} years old", age=age
            )

        user = await self.session.get(User, user_id)
        if user is None:
            raise DriverServiceError("User not found", user_id=str(user_id))
        if await self.repository.get_driver_by_user_id(user_id) is not None:
            raise DriverServiceError(
                "Driver profile already exists for this user", user_id=str(user_id)
            )

        driver = await self.repository.create_driver(
            user_id,
            full_name=full_name,
            age=age,
            vehicle_type=vehicle_type,
            phone=phone,
            city=city,
            makopay_id=makopay_id,
            drivers_license_url=drivers_license_url,
            vehicle_registration_url=vehicle_registration_url,
            insurance_certificate_url=insurance_certificate_url,
            medical_certificate_url=medical_certificate_url,
        )
        if user.role == UserRole.CUSTOMER:
            user.role = UserRole.DRIVER
        await self.session.commit()
        return driver

    async def get_driver(self, driver_id: uuid.UUID) -> Driver:
        driver = await self.repository.get_driver_by_id(driver_id)
        if driver is None:
            raise DriverNotFoundError("Driver not found", driver_id=str(driver_id))
        return driver

    async def list_drivers(self, status: Optional[DriverStatus] = None) -> Sequence[Driver]:
        return await self.repository.list_drivers(status=status)

    async def update_status(
        self,
        driver_id: uuid.UUID,
        status: DriverStatus,
        rejection_reason: Optional[str] = None,
    ) -> Driver:
        """
        Admin review decision.

        Approval stamps approved_at; rejection records the reason. Suspended
        drivers are taken offline.
        """
        driver = await self.get_driver(driver_id)
        previous = driver.status

        driver.status = status
        if status == DriverStatus.APPROVED:
            driver.approved_at = datetime.now(timezone.utc)
            driver.rejection_reason = None
        elif status == DriverStatus.REJECTED:
            driver.rejection_reason = rejection_reason
        if status in (DriverStatus.REJECTED, DriverStatus.SUSPENDED):
            driver.is_online = False

        await self.repository.save(driver)
        await self.session.commit()

        logger.info(
            "Driver status changed",
            driver_id=str(driver_id),
            from_status=previous.value,
            to_status=status.value,
        )
        return driver

    async def set_online(self, driver_id: uuid.UUID, is_online: bool) -> Driver:
        driver = await self.get_driver(driver_id)
        if is_online and driver.status != DriverStatus.APPROVED:
            raise DriverValidationError(
                "Only approved drivers can go online", driver_id=str(driver_id)
            )
        driver.is_online = is_online
        await self.repository.save(driver)
        await self.session.commit()
        return driver

    async def issue_equipment(
        self,
        driver_id: uuid.UUID,
        has_gps_equipment: bool,
        has_insurance: bool,
        has_uniform: bool,
    ) -> Driver:
        """
        Record the equipment handed to a driver.

        Raises:
            TierUpgradeNotAllowedError: If the GPS bag and insurance would be
                granted to a driver who is not eligible for premium
        """
        driver = await self.get_driver(driver_id)
        new_tier = resolve_tier(has_gps_equipment, has_insurance)

        if (
            new_tier == EquipmentTier.PREMIUM
            and driver.equipment_tier != EquipmentTier.PREMIUM
            and not can_upgrade_to_premium(driver)
        ):
            logger.warning(
                "Premium equipment refused",
                driver_id=str(driver_id),
                driver_status=driver.status.value,
                missing_documents=missing_documents(driver),
            )
            raise TierUpgradeNotAllowedError(
                "Driver is not eligible for the premium tier",
                driver_id=str(driver_id),
                missing_documents=missing_documents(driver),
            )

        previous_tier = driver.equipment_tier
        driver.has_gps_equipment = has_gps_equipment
        driver.has_insurance = has_insurance
        driver.has_uniform = has_uniform
        await self.repository.save(driver)
        await self.session.commit()

        logger.info(
            "Driver equipment updated",
            driver_id=str(driver_id),
            from_tier=previous_tier.value,
            to_tier=driver.equipment_tier.value,
        )
        return driver

    def get_upgrade_eligibility(self, driver: Driver) -> UpgradeEligibility:
        return UpgradeEligibility(
            eligible=can_upgrade_to_premium(driver),
            status=driver.status,
            current_tier=driver.equipment_tier,
            missing_documents=missing_documents(driver),
            standard=get_equipment_tier_info(EquipmentTier.STANDARD),
            premium=get_equipment_tier_info(EquipmentTier.PREMIUM),
        )

    async def get_stats(self, driver: Driver) -> DriverStats:
        settlements = SettlementRepository(self.session)
        today = await settlements.sum_driver_earnings(driver.id, since=start_of_day())
        return DriverStats(
            total_deliveries=driver.total_deliveries,
            rating=driver.rating,
            today_earnings=today,
            tier=driver.equipment_tier,
            is_online=driver.is_online,
        )
