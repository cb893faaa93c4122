"""
Commission engine for delivery settlement.

Splits a delivery price between the driver and the platform according to the
driver's equipment tier, and quotes the fees for moving money to a driver.
All arithmetic uses Decimal so that driver earnings plus platform earnings
always equal the delivery amount exactly.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Protocol, Union

STANDARD_COMMISSION_RATE = Decimal("0.20")
PREMIUM_COMMISSION_RATE = Decimal("0.30")
EXTERNAL_TRANSFER_FEE_RATE = Decimal("0.02")

MINOR_UNIT = Decimal("0.01")
WHOLE_UNIT = Decimal("1")

Amount = Union[Decimal, int, float, str]


class EquipmentTier(str, Enum):
    """Driver commission-rate class."""

    STANDARD = "standard"
    PREMIUM = "premium"

    @property
    def commission_rate(self) -> Decimal:
        if self == EquipmentTier.PREMIUM:
            return PREMIUM_COMMISSION_RATE
        return STANDARD_COMMISSION_RATE


class InvalidAmountError(ValueError):
    """Raised when a monetary amount is negative or not finite."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.context = context


class EquippedDriver(Protocol):
    has_gps_equipment: bool
    has_insurance: bool
    has_uniform: bool


@dataclass(frozen=True)
class CommissionCalculation:
    """
    Result of applying the commission engine to one delivery.

    Attributes:
        base_amount: Delivery price the split was computed from
        commission_rate: Rate applied for the driver's tier
        commission_amount: Platform cut, rounded to the currency minor unit
        driver_earnings: base_amount - commission_amount
        admin_earnings: Same value as commission_amount
        tier: Tier the rate was selected for
        benefits: Informational perks unlocked by the tier and equipment
    """

    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    driver_earnings: Decimal
    admin_earnings: Decimal
    tier: EquipmentTier
    benefits: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TransferQuote:
    transfer_amount: Decimal
    fees: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class CommissionSplit:
    commission: Decimal
    driver_amount: Decimal


def resolve_tier(has_gps_equipment: bool, has_insurance: bool) -> EquipmentTier:
    """Premium requires both GPS equipment and insurance; the uniform never counts."""
    if has_gps_equipment and has_insurance:
        return EquipmentTier.PREMIUM
    return EquipmentTier.STANDARD


def to_amount(value: Amount) -> Decimal:
    """
    Convert a monetary value to Decimal and validate it.

    Floats are converted through their string form so that 12345.67 stays
    12345.67 rather than its nearest binary fraction.

    Raises:
        InvalidAmountError: If the value is not a number, not finite, or negative
    """
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be numeric", value=value)

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError("Amount must be numeric", value=str(value)) from e

    if not amount.is_finite():
        raise InvalidAmountError("Amount must be finite", value=str(value))
    if amount < 0:
        raise InvalidAmountError("Amount cannot be negative", value=str(value))

    return amount


def benefits_for(driver: EquippedDriver, tier: EquipmentTier) -> tuple[str, ...]:
    """Perks unlocked by the tier, plus the uniform when one was issued."""
    benefits: list[str] = []
    if tier == EquipmentTier.PREMIUM:
        benefits.extend(
            [
                "GPS delivery bag provided",
                "Insurance coverage",
                "High priority on orders",
                "Instant payout via MakoPay",
            ]
        )
    if driver.has_uniform:
        benefits.append("Professional uniform provided")
    return tuple(benefits)


def calculate_commission(
    driver: EquippedDriver, delivery_amount: Amount
) -> CommissionCalculation:
    """
    Compute how a delivery price splits between driver and platform.

    The commission is rounded half-up to the currency minor unit and the
    driver receives the exact remainder, so
    ``driver_earnings + admin_earnings == base_amount`` holds for every input.

    Args:
        driver: Any object exposing has_gps_equipment, has_insurance and has_uniform
        delivery_amount: Non-negative delivery price

    Returns:
        CommissionCalculation for the driver's current tier

    Raises:
        InvalidAmountError: If delivery_amount is negative or not finite

    Example:
        >>> calc = calculate_commission(driver, Decimal("10000"))
        >>> calc.commission_amount, calc.driver_earnings
        (Decimal('2000.00'), Decimal('8000.00'))
    """
    base_amount = to_amount(delivery_amount)
    tier = resolve_tier(bool(driver.has_gps_equipment), bool(driver.has_insurance))
    rate = tier.commission_rate

    commission_amount = (base_amount * rate).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)
    driver_earnings = base_amount - commission_amount

    return CommissionCalculation(
        base_amount=base_amount,
        commission_rate=rate,
        commission_amount=commission_amount,
        driver_earnings=driver_earnings,
        admin_earnings=commission_amount,
        tier=tier,
        benefits=benefits_for(driver, tier),
    )


def calculate_transfer(amount: Amount, internal_rail: bool = False) -> TransferQuote:
    """
    Quote a payout transfer.

    Transfers on the MakoPay wallet rail are free; any other rail (bank,
    another mobile-money operator) carries a 2% fee taken from the amount.
    """
    transfer_amount = to_amount(amount)
    if internal_rail:
        return TransferQuote(
            transfer_amount=transfer_amount,
            fees=Decimal("0"),
            net_amount=transfer_amount,
        )

    fees = (transfer_amount * EXTERNAL_TRANSFER_FEE_RATE).quantize(
        MINOR_UNIT, rounding=ROUND_HALF_UP
    )
    return TransferQuote(
        transfer_amount=transfer_amount,
        fees=fees,
        net_amount=transfer_amount - fees,
    )


def calculate_commission_split(total: Amount, rate: Amount) -> CommissionSplit:
    """
    Split a total at an arbitrary rate, rounding the commission to whole units.

    XOF has no minor unit in circulation, so payment requests use this split.
    """
    total_amount = to_amount(total)
    commission_rate = to_amount(rate)
    if commission_rate > 1:
        raise InvalidAmountError("Commission rate cannot exceed 1", rate=str(rate))

    commission = (total_amount * commission_rate).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)
    return CommissionSplit(commission=commission, driver_amount=total_amount - commission)
