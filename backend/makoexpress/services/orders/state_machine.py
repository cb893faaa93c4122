"""Order lifecycle state machine.

This module implements the OrderStateMachine class: driver acceptance,
status progression, customer cancellation and settlement on delivery.

Every transition is a guarded conditional write (see OrderRepository), so the
outcome of concurrent requests is decided by the database: exactly one
accept wins, a duplicate "delivered" is a no-op, and settlement runs only in
the branch where the write to ``delivered`` actually matched. Expected
refusals come back as an OrderActionResult rather than an exception.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.driver import DriverStatus
from makoexpress.database.models.order import Order, OrderStatus
from makoexpress.database.models.settlement import Settlement
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.orders.enums import (
    ActionOutcome,
    required_predecessor,
)
from makoexpress.services.orders.history import StatusHistoryLedger
from makoexpress.services.orders.repository import OrderRepository
from makoexpress.services.payments.repository import SettlementRepositoryError
from makoexpress.services.payments.settlement import (
    PayoutGateway,
    SettlementService,
    SettlementServiceError,
)

logger = get_logger(__name__)

ORDER_NOT_AVAILABLE = "Order no longer available"
CANNOT_CANCEL_ASSIGNED = "Cannot cancel, a driver has already been assigned"


@dataclass
class OrderActionResult:
    """Typed outcome of a lifecycle action.

    Attributes:
        outcome: What happened
        order: Current state of the order, when it exists
        message: Human-readable explanation for refusals
        settlement: Settlement written by a successful delivery
    """

    outcome: ActionOutcome
    order: Optional[Order] = None
    message: str = ""
    settlement: Optional[Settlement] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ActionOutcome.SUCCESS


class OrderStateMachine:
    """State machine for managing order lifecycle transitions.

    Commits the session after each successful transition. On delivery the
    transition, history entry and settlement record are committed together
    before the payout is requested, so a slow gateway never holds a
    transaction on the order.
    """

    def __init__(self, db_session: AsyncSession, gateway: PayoutGateway):
        """Initialize state machine.

        Args:
            db_session: Async session used for every transition
            gateway: Payment gateway used for driver payouts
        """
        self.db = db_session
        self.orders = OrderRepository(db_session)
        self.drivers = DriverRepository(db_session)
        self.history = StatusHistoryLedger(db_session)
        self.settlements = SettlementService(db_session, gateway)

    async def accept(self, order_id: UUID, driver_id: UUID) -> OrderActionResult:
        """Assign a pending order to the first driver that claims it."""
        driver = await self.drivers.get_driver_by_id(driver_id)
        if driver is None:
            return OrderActionResult(ActionOutcome.NOT_FOUND, message="Driver not found")
        if driver.status != DriverStatus.APPROVED:
            logger.warning(
                "Unapproved driver attempted to accept order",
                order_id=str(order_id),
                driver_id=str(driver_id),
                driver_status=driver.status.value,
            )
            return OrderActionResult(ActionOutcome.FORBIDDEN, message="Driver is not approved")

        if not await self.orders.try_assign_driver(order_id, driver_id):
            await self._end_refused_write()
            order = await self.orders.get_order_by_id(order_id, refresh=True)
            if order is None:
                return OrderActionResult(ActionOutcome.NOT_FOUND, message="Order not found")
            logger.info(
                "Order acceptance lost",
                order_id=str(order_id),
                driver_id=str(driver_id),
                current_status=order.status.value,
            )
            return OrderActionResult(ActionOutcome.CONFLICT, order, ORDER_NOT_AVAILABLE)

        await self.history.append(order_id, OrderStatus.ACCEPTED, notes="Accepted by driver")
        order = await self.orders.get_order_by_id(order_id, refresh=True)
        await self.db.commit()

        logger.info("Order accepted", order_id=str(order_id), driver_id=str(driver_id))
        return OrderActionResult(ActionOutcome.SUCCESS, order)

    async def advance(
        self,
        order_id: UUID,
        driver_id: UUID,
        target: OrderStatus,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderActionResult:
        """Move an order one step along picked_up -> in_transit -> delivered.

        Only the assigned driver can advance the order, and only from the
        status immediately before target. Skipping a step or repeating one
        is a conflict.
        """
        expected = required_predecessor(target)
        if expected is None:
            return OrderActionResult(
                ActionOutcome.CONFLICT,
                message=f"Drivers cannot move an order to {target.value}",
            )

        matched = await self.orders.try_advance_status(order_id, driver_id, expected, target)
        if not matched:
            await self._end_refused_write()
            return await self._classify_advance_refusal(order_id, driver_id, target)

        await self.history.append(order_id, target, location=location, notes=notes)

        settlement: Optional[Settlement] = None
        order = await self.orders.get_order_by_id(order_id, refresh=True)
        if target == OrderStatus.DELIVERED:
            await self.drivers.increment_total_deliveries(driver_id)
            driver = await self.drivers.get_driver_by_id(driver_id)
            settlement = await self.settlements.record_settlement(order, driver)

        await self.db.commit()
        logger.info(
            "Order status advanced",
            order_id=str(order_id),
            driver_id=str(driver_id),
            from_status=expected.value,
            to_status=target.value,
        )

        if settlement is not None:
            settlement = await self._pay_out(order_id, settlement)
            order = await self.orders.get_order_by_id(order_id, refresh=True)

        return OrderActionResult(ActionOutcome.SUCCESS, order, settlement=settlement)

    async def cancel(
        self,
        order_id: UUID,
        customer_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> OrderActionResult:
        """Cancel an order nobody has accepted yet.

        Args:
            order_id: Order to cancel
            customer_id: When given, only this customer's order can be cancelled
            reason: Optional note stored in the history entry
        """
        if not await self.orders.try_cancel(order_id, customer_id=customer_id):
            await self._end_refused_write()
            order = await self.orders.get_order_by_id(order_id, refresh=True)
            if order is None:
                return OrderActionResult(ActionOutcome.NOT_FOUND, message="Order not found")
            if customer_id is not None and order.customer_id != customer_id:
                return OrderActionResult(
                    ActionOutcome.FORBIDDEN, message="Order belongs to another customer"
                )
            if order.driver_id is not None:
                return OrderActionResult(ActionOutcome.CONFLICT, order, CANNOT_CANCEL_ASSIGNED)
            return OrderActionResult(
                ActionOutcome.CONFLICT,
                order,
                f"Order is already {order.status.value} and cannot be cancelled",
            )

        await self.history.append(
            order_id, OrderStatus.CANCELLED, notes=reason or "Cancelled by customer"
        )
        order = await self.orders.get_order_by_id(order_id, refresh=True)
        await self.db.commit()

        logger.info("Order cancelled", order_id=str(order_id), customer_id=str(customer_id))
        return OrderActionResult(ActionOutcome.SUCCESS, order)

    async def _end_refused_write(self) -> None:
        # Nothing was written; ends the transaction without expiring loaded objects
        await self.db.commit()

    async def _classify_advance_refusal(
        self, order_id: UUID, driver_id: UUID, target: OrderStatus
    ) -> OrderActionResult:
        order = await self.orders.get_order_by_id(order_id, refresh=True)
        if order is None:
            return OrderActionResult(ActionOutcome.NOT_FOUND, message="Order not found")
        if order.driver_id != driver_id:
            logger.warning(
                "Driver attempted to advance an order assigned elsewhere",
                order_id=str(order_id),
                driver_id=str(driver_id),
            )
            return OrderActionResult(
                ActionOutcome.FORBIDDEN, order, "Order is not assigned to this driver"
            )

        logger.info(
            "Stale status transition ignored",
            order_id=str(order_id),
            current_status=order.status.value,
            target_status=target.value,
        )
        return OrderActionResult(
            ActionOutcome.CONFLICT,
            order,
            f"Cannot move order from {order.status.value} to {target.value}",
        )

    async def _pay_out(self, order_id: UUID, settlement: Settlement) -> Optional[Settlement]:
        """Request the driver payout; the delivery stays confirmed whatever happens.

        A payout that blows up is recorded as failed so an operator can retry it.
        """
        settlement_id = str(settlement.id)
        try:
            return await self.settlements.execute_payout(order_id)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Driver payout could not be attempted",
                order_id=str(order_id),
                error=str(e),
                error_type=type(e).__name__,
                settlement_id=settlement_id,
                requires_operator_action=True,
            )
            failure = f"Payout could not be attempted: {type(e).__name__}"

        try:
            return await self.settlements.mark_payout_failed(order_id, failure)
        except (SettlementServiceError, SettlementRepositoryError, SQLAlchemyError) as e:
            await self.db.rollback()
            logger.error(
                "Failed payout could not be recorded",
                order_id=str(order_id),
                settlement_id=settlement_id,
                error=str(e),
                requires_operator_action=True,
            )
            return None

