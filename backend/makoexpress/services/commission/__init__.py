"""
Commission engine and driver tier rules.
"""

from makoexpress.services.commission.calculator import (
    PREMIUM_COMMISSION_RATE,
    STANDARD_COMMISSION_RATE,
    CommissionCalculation,
    CommissionSplit,
    EquipmentTier,
    InvalidAmountError,
    TransferQuote,
    benefits_for,
    calculate_commission,
    calculate_commission_split,
    calculate_transfer,
    resolve_tier,
)
from makoexpress.services.commission.tiers import (
    TierInfo,
    can_upgrade_to_premium,
    get_equipment_tier_info,
    missing_documents,
)

__all__ = [
    "PREMIUM_COMMISSION_RATE",
    "STANDARD_COMMISSION_RATE",
    "CommissionCalculation",
    "CommissionSplit",
    "EquipmentTier",
    "InvalidAmountError",
    "TransferQuote",
    "TierInfo",
    "benefits_for",
    "calculate_commission",
    "calculate_commission_split",
    "calculate_transfer",
    "can_upgrade_to_premium",
    "get_equipment_tier_info",
    "missing_documents",
    "resolve_tier",
]
