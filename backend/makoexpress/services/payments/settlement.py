"""
Delivery settlement and driver payouts.

Settlement happens in two steps. While the delivery is being confirmed the
commission split is computed from the order price and the driver's current
tier and persisted. After that transaction is committed the driver transfer
is requested from the gateway with no transaction open, and its outcome is
recorded on the settlement. A failed or unreachable gateway leaves the
settlement in ``failed`` for an operator to retry; the delivery itself is
never rolled back.
"""

import uuid
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.driver import Driver
from makoexpress.database.models.order import Order
from makoexpress.database.models.settlement import PayoutStatus, Settlement
from makoexpress.services.commission.calculator import CommissionCalculation, calculate_commission
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.payments.makopay_client import (
    GatewayConfigurationError,
    GatewayResponse,
    TransactionStatus,
)
from makoexpress.services.payments.repository import SettlementRepository

logger = get_logger(__name__)


class PayoutGateway(Protocol):
    async def transfer_to_driver(
        self, driver_id: str, amount: Decimal, driver_phone: str, order_id: str
    ) -> GatewayResponse: ...

    async def check_transaction_status(self, transaction_id: str) -> GatewayResponse: ...


class SettlementServiceError(Exception):
    """Base exception for settlement service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class SettlementNotFoundError(SettlementServiceError):
    pass


class PayoutStateError(SettlementServiceError):
    """Raised when a payout action does not apply to the current payout status."""

    pass


_PAYOUT_STATUS_BY_TRANSACTION = {
    TransactionStatus.PENDING: PayoutStatus.PENDING,
    TransactionStatus.COMPLETED: PayoutStatus.COMPLETED,
    TransactionStatus.FAILED: PayoutStatus.FAILED,
}


def payout_status_for(response: GatewayResponse) -> PayoutStatus:
    """Map a gateway outcome onto the payout status it implies."""
    if not response.success:
        return PayoutStatus.FAILED
    return _PAYOUT_STATUS_BY_TRANSACTION[response.status]


class SettlementService:
    """
    Commission settlement and payout orchestration.

    Attributes:
        session: Database session; payout methods commit it
        gateway: Payment gateway used for driver transfers
    """

    def __init__(self, session: AsyncSession, gateway: PayoutGateway):
        self.session = session
        self.gateway = gateway
        self.settlements = SettlementRepository(session)
        self.drivers = DriverRepository(session)

    def compute_settlement(self, order: Order, driver: Driver) -> CommissionCalculation:
        """Commission split for an order at the driver's current tier."""
        return calculate_commission(driver, order.price)

    async def record_settlement(self, order: Order, driver: Driver) -> Settlement:
        """
        Compute and persist the split for a just-delivered order.

        Runs inside the delivery transaction; the caller commits.
        """
        calculation = self.compute_settlement(order, driver)
        return await self.settlements.create_settlement(order, driver.id, calculation)

    async def request_payout(
        self, driver: Driver, amount: Decimal, order_id: uuid.UUID
    ) -> GatewayResponse:
        """
        Ask the gateway to transfer a driver's earnings for one order.

        Raises:
            GatewayConfigurationError: If the gateway has no credentials
        """
        return await self.gateway.transfer_to_driver(
            str(driver.id), amount, driver.phone, str(order_id)
        )

    async def execute_payout(self, order_id: uuid.UUID) -> Settlement:
        """
        Issue the transfer for a recorded settlement and store the outcome.

        Must be called with the settlement already committed. The attempt is
        counted and committed before the gateway call so that no transaction
        is held open while the request is in flight.

        Raises:
            SettlementNotFoundError: If the order has no settlement
        """
        settlement = await self._get_settlement(order_id)
        driver = await self.drivers.get_driver_by_id(settlement.driver_id)
        if driver is None:
            raise SettlementNotFoundError(
                "Driver for settlement not found",
                order_id=str(order_id),
                driver_id=str(settlement.driver_id),
            )

        await self.settlements.record_attempt(settlement)
        await self.session.commit()

        try:
            response = await self.request_payout(driver, settlement.driver_earnings, order_id)
        except GatewayConfigurationError as e:
            response = GatewayResponse.failure(str(e))
        except httpx.HTTPError as e:
            response = GatewayResponse.failure(f"Payment gateway error: {e}")

        return await self._store_outcome(settlement, response)

    async def retry_payout(self, order_id: uuid.UUID) -> Settlement:
        """
        Re-issue a failed payout with the same transfer reference.

        Raises:
            PayoutStateError: If the payout is not in failed status
        """
        settlement = await self._get_settlement(order_id)
        if settlement.payout_status != PayoutStatus.FAILED:
            raise PayoutStateError(
                "Only failed payouts can be retried",
                order_id=str(order_id),
                payout_status=settlement.payout_status.value,
            )
        logger.info("Retrying driver payout", order_id=str(order_id), attempts=settlement.payout_attempts)
        return await self.execute_payout(order_id)

    async def reconcile_payout(self, order_id: uuid.UUID) -> Settlement:
        """
        Poll the gateway for a pending payout and record what it reports.

        Raises:
            PayoutStateError: If the payout is not pending or has no transaction id
        """
        settlement = await self._get_settlement(order_id)
        if settlement.payout_status != PayoutStatus.PENDING or not settlement.payout_transaction_id:
            raise PayoutStateError(
                "Only pending payouts with a gateway transaction can be reconciled",
                order_id=str(order_id),
                payout_status=settlement.payout_status.value,
            )

        try:
            response = await self.gateway.check_transaction_status(settlement.payout_transaction_id)
        except GatewayConfigurationError as e:
            logger.error("Payout reconciliation impossible", order_id=str(order_id), error=str(e))
            raise

        if not response.success:
            # The poll itself failed; the transfer may still be in flight.
            logger.warning(
                "Payout status check failed",
                order_id=str(order_id),
                transaction_id=settlement.payout_transaction_id,
                gateway_message=response.message,
            )
            return settlement

        return await self._store_outcome(settlement, response)

    async def apply_transaction_status(
        self, settlement: Settlement, status: TransactionStatus, message: Optional[str] = None
    ) -> Settlement:
        """
        Record a payout status reported asynchronously by the gateway.

        A completed payout is final: later reports for it are logged and dropped.
        """
        if settlement.payout_status == PayoutStatus.COMPLETED:
            if status != TransactionStatus.COMPLETED:
                logger.warning(
                    "Ignored status report for completed payout",
                    order_id=str(settlement.order_id),
                    transaction_id=settlement.payout_transaction_id,
                    reported_status=status.value,
                    security_event=True,
                )
            return settlement

        response = GatewayResponse(
            success=True,
            transaction_id=settlement.payout_transaction_id or "",
            status=status,
            message=message or "",
        )
        return await self._store_outcome(settlement, response)

    async def mark_payout_failed(self, order_id: uuid.UUID, message: str) -> Settlement:
        """Record a payout attempt that ended without a usable gateway answer."""
        settlement = await self._get_settlement(order_id)
        return await self._store_outcome(settlement, GatewayResponse.failure(message))

    async def _get_settlement(self, order_id: uuid.UUID) -> Settlement:
        settlement = await self.settlements.get_by_order_id(order_id)
        if settlement is None:
            raise SettlementNotFoundError("Settlement not found", order_id=str(order_id))
        return settlement

    async def _store_outcome(self, settlement: Settlement, response: GatewayResponse) -> Settlement:
        payout_status = payout_status_for(response)
        if payout_status == PayoutStatus.PENDING and not response.transaction_id:
            # Without a transaction id the transfer can never be reconciled
            payout_status = PayoutStatus.FAILED
            response = GatewayResponse.failure(
                response.message or "Gateway accepted the transfer without a transaction id"
            )
        await self.settlements.record_payout(
            settlement,
            payout_status,
            transaction_id=response.transaction_id or None,
            message=response.message,
        )
        await self.session.commit()

        if payout_status == PayoutStatus.FAILED:
            logger.error(
                "Driver payout failed",
                order_id=str(settlement.order_id),
                driver_id=str(settlement.driver_id),
                amount=str(settlement.driver_earnings),
                reference=settlement.payout_reference,
                attempts=settlement.payout_attempts,
                gateway_message=response.message,
                requires_operator_action=True,
            )
        else:
            logger.info(
                "Driver payout recorded",
                order_id=str(settlement.order_id),
                payout_status=payout_status.value,
                transaction_id=response.transaction_id,
            )
        return settlement
