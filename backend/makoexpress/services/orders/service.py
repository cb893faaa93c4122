"""
Order service for creation, queries and tracking.

Lifecycle transitions (accept, advance, cancel) belong to the state machine;
this service covers everything around them: placing orders, looking them up,
the public tracking view and platform statistics.
"""

import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import (
    Order,
    OrderStatus,
    OrderStatusHistory,
    PaymentMethod,
    Urgency,
)
from makoexpress.services.commission.calculator import InvalidAmountError, to_amount
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.orders.enums import progress_percentage
from makoexpress.services.orders.history import StatusHistoryLedger
from makoexpress.services.orders.repository import OrderNotFoundError, OrderRepository
from makoexpress.services.payments.repository import SettlementRepository

logger = get_logger(__name__)

TRACKING_NUMBER_ATTEMPTS = 5


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderValidationError(OrderServiceError):
    """Raised when order validation fails."""

    pass


@dataclass
class TrackingView:
    order: Order
    history: Sequence[OrderStatusHistory]
    progress: int


@dataclass
class PlatformStats:
    total_orders: int
    active_drivers: int
    pending_orders: int
    delivered_today: int
    platform_commission: Decimal


def generate_tracking_number() -> str:
    """MAKO followed by epoch milliseconds and three random digits."""
    return f"MAKO{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class OrderService:
    """
    Order service orchestrating creation and read models.

    Attributes:
        repository: Order repository for data access
        history: Status history ledger
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = OrderRepository(session)
        self.history = StatusHistoryLedger(session)

    async def create_order(
        self,
        customer_id: uuid.UUID,
        pickup_address: str,
        delivery_address: str,
        package_type: str,
        weight: str,
        urgency: Urgency,
        price: Decimal,
        payment_method: Optional[PaymentMethod] = None,
        notes: Optional[str] = None,
        customer_phone: Optional[str] = None,
        delivery_instructions: Optional[str] = None,
        estimated_delivery_time: Optional[datetime] = None,
    ) -> Order:
        """
        Place a new delivery order.

        The order starts pending and unassigned, and its first history entry
        records the creation.

        Raises:
            OrderValidationError: If the price or addresses are invalid
            OrderCreationError: If persistence fails
        """
        try:
            amount = to_amount(price)
        except InvalidAmountError as e:
            raise OrderValidationError("Price must be a valid amount", price=str(price)) from e
        if amount <= 0:
            raise OrderValidationError("Price must be positive", price=str(price))
        if not pickup_address or not pickup_address.strip():
            raise OrderValidationError("Pickup address is required")
        if not delivery_address or not delivery_address.strip():
            raise OrderValidationError("Delivery address is required")

        tracking_number = await self._unique_tracking_number()

        order = await self.repository.create_order(
            tracking_number=tracking_number,
            customer_id=customer_id,
            pickup_address=pickup_address.strip(),
            delivery_address=delivery_address.strip(),
            package_type=package_type,
            weight=weight,
            urgency=urgency,
            price=amount,
            payment_method=payment_method,
            notes=notes,
            customer_phone=customer_phone,
            delivery_instructions=delivery_instructions,
            estimated_delivery_time=estimated_delivery_time,
        )
        await self.history.append(order.id, OrderStatus.PENDING, notes="Order created")
        await self.session.commit()

        return order

    async def _unique_tracking_number(self) -> str:
        for _ in range(TRACKING_NUMBER_ATTEMPTS):
            candidate = generate_tracking_number()
            if not await self.repository.tracking_number_exists(candidate):
                return candidate
        raise OrderServiceError("Could not allocate a unique tracking number")

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def get_tracking(self, tracking_number: str) -> TrackingView:
        """
        Order, its status trail oldest first, and progress percentage.

        Raises:
            OrderNotFoundError: If no order has this tracking number
        """
        order = await self.repository.get_order_by_tracking_number(tracking_number)
        if order is None:
            raise OrderNotFoundError("Order not found", tracking_number=tracking_number)
        history = await self.history.list_for(order.id)
        return TrackingView(order=order, history=history, progress=progress_percentage(order.status))

    async def get_history(self, order_id: uuid.UUID) -> Sequence[OrderStatusHistory]:
        await self.get_order(order_id)
        return await self.history.list_for(order_id)

    async def get_customer_orders(
        self, customer_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> Sequence[Order]:
        return await self.repository.get_customer_orders(customer_id, limit=limit, offset=offset)

    async def get_driver_orders(
        self, driver_id: uuid.UUID, limit: int = 50, offset: int = 0
    ) -> Sequence[Order]:
        return await self.repository.get_driver_orders(driver_id, limit=limit, offset=offset)

    async def get_available_orders(self, limit: int = 50) -> Sequence[Order]:
        return await self.repository.get_available_orders(limit=limit)

    async def get_platform_stats(self) -> PlatformStats:
        """Admin dashboard figures."""
        drivers = DriverRepository(self.session)
        settlements = SettlementRepository(self.session)
        return PlatformStats(
            total_orders=await self.repository.count_orders(),
            active_drivers=await drivers.count_active_drivers(),
            pending_orders=await self.repository.count_orders(status=OrderStatus.PENDING),
            delivered_today=await self.repository.count_orders(
                status=OrderStatus.DELIVERED, delivered_since=start_of_day()
            ),
            platform_commission=await settlements.sum_platform_commission(),
        )
