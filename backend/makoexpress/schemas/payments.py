"""
Payment, settlement and statistics schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from makoexpress.database.models.order import PaymentStatus
from makoexpress.database.models.settlement import PayoutStatus
from makoexpress.services.commission.calculator import EquipmentTier
from makoexpress.services.payments.makopay_client import TransactionStatus


class SettlementResponse(BaseModel):
    """Commission split and payout tracking for one delivered order."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    driver_id: UUID
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    driver_earnings: Decimal
    admin_earnings: Decimal
    tier: EquipmentTier
    payout_status: PayoutStatus
    payout_reference: str
    payout_transaction_id: Optional[str] = None
    payout_message: Optional[str] = None
    payout_attempts: int
    paid_out_at: Optional[datetime] = None
    created_at: datetime


class PaymentResponse(BaseModel):
    order_id: UUID
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    message: str = ""


class WebhookAckResponse(BaseModel):
    received: bool = True
    transaction_id: str
    status: TransactionStatus
    matched: bool


class PlatformStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_orders: int
    active_drivers: int
    pending_orders: int
    delivered_today: int
    platform_commission: Decimal
