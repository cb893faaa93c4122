"""
Driver equipment tiers and premium upgrade eligibility.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from makoexpress.services.commission.calculator import EquipmentTier

APPROVED_STATUS = "approved"


class DocumentedDriver(Protocol):
    status: object
    drivers_license_url: Optional[str]
    vehicle_registration_url: Optional[str]
    insurance_certificate_url: Optional[str]
    medical_certificate_url: Optional[str]


@dataclass(frozen=True)
class TierInfo:
    """Static display metadata describing what a tier means contractually."""

    tier: EquipmentTier
    name: str
    commission: str
    priority: str
    payout: str
    equipment: str
    benefits: tuple[str, ...]


_TIER_INFO = {
    EquipmentTier.STANDARD: TierInfo(
        tier=EquipmentTier.STANDARD,
        name="Standard",
        commission="20%",
        priority="low",
        payout="24h",
        equipment="None",
        benefits=(
            "Access to standard orders",
            "Payout within 24h",
            "Standard customer support",
        ),
    ),
    EquipmentTier.PREMIUM: TierInfo(
        tier=EquipmentTier.PREMIUM,
        name="Premium VIP",
        commission="30%",
        priority="high",
        payout="instant",
        equipment="GPS bag + Insurance + Uniform",
        benefits=(
            "Priority on orders",
            "Instant payout via MakoPay",
            "GPS bag and equipment provided",
            "Professional insurance included",
            "MAKOEXPRESS uniform",
            "Priority VIP support",
            "Access to premium orders",
            "Increased visibility on the map",
        ),
    ),
}


def get_equipment_tier_info(tier: EquipmentTier | str) -> TierInfo:
    """
    Look up display metadata for a tier.

    Raises:
        ValueError: If tier is not a known tier name
    """
    return _TIER_INFO[EquipmentTier(tier)]


def _status_value(status: object) -> str:
    return getattr(status, "value", status)


def missing_documents(driver: DocumentedDriver) -> list[str]:
    """Names of the required documents the driver has not provided."""
    required = (
        "drivers_license_url",
        "vehicle_registration_url",
        "insurance_certificate_url",
        "medical_certificate_url",
    )
    return [name for name in required if not getattr(driver, name, None)]


def can_upgrade_to_premium(driver: DocumentedDriver) -> bool:
    """
    Check whether a driver may request the premium tier.

    True only for an approved driver who has provided all four documents.
    This is a gate for requesting the upgrade; the tier itself only changes
    when GPS equipment and insurance are issued.
    """
    return _status_value(driver.status) == APPROVED_STATUS and not missing_documents(driver)
