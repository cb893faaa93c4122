"""
Customer payment service and MakoPay webhook handling.

This module implements the PaymentService class for charging customers for
their orders and for applying asynchronous transaction updates pushed by the
gateway. Webhooks are verified before anything is read from them; a payload
with a bad signature never touches order or payout state.
"""

import json
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import Order, OrderStatus, PaymentStatus
from makoexpress.database.models.settlement import Settlement
from makoexpress.services.orders.repository import OrderNotFoundError, OrderRepository
from makoexpress.services.payments.makopay_client import GatewayResponse, TransactionStatus
from makoexpress.services.payments.repository import SettlementRepository
from makoexpress.services.payments.settlement import PayoutGateway, SettlementService

logger = get_logger(__name__)


class PaymentGateway(PayoutGateway, Protocol):
    async def process_order_payment(
        self, order_id: str, amount: Decimal, customer_phone: str
    ) -> GatewayResponse: ...

    def validate_webhook(self, signature: str, payload: str, timestamp: str) -> bool: ...


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class PaymentValidationError(PaymentServiceError):
    """Exception for payment validation failures."""

    pass


class WebhookSignatureError(PaymentServiceError):
    """Raised when an inbound webhook fails signature verification."""

    pass


_PAYMENT_STATUS_BY_TRANSACTION = {
    TransactionStatus.PENDING: PaymentStatus.PENDING,
    TransactionStatus.COMPLETED: PaymentStatus.PAID,
    TransactionStatus.FAILED: PaymentStatus.FAILED,
}


def payment_status_for(response: GatewayResponse) -> PaymentStatus:
    if not response.success:
        return PaymentStatus.FAILED
    return _PAYMENT_STATUS_BY_TRANSACTION[response.status]


@dataclass
class ChargeResult:
    """
    Attributes:
        order: Order after the charge attempt
        response: Gateway response, None when no gateway call was needed
    """

    order: Order
    response: Optional[GatewayResponse] = None


@dataclass
class WebhookResult:
    transaction_id: str
    status: TransactionStatus
    order: Optional[Order] = None
    settlement: Optional[Settlement] = None

    @property
    def matched(self) -> bool:
        return self.order is not None or self.settlement is not None


class PaymentService:
    """
    Payment service for customer charges and gateway callbacks.

    Attributes:
        orders: Order repository
        gateway: MakoPay client (or any object with the same methods)
    """

    def __init__(self, session: AsyncSession, gateway: PaymentGateway):
        self.session = session
        self.gateway = gateway
        self.orders = OrderRepository(session)
        self.settlements = SettlementRepository(session)
        self.settlement_service = SettlementService(session, gateway)

    async def charge_order(
        self,
        order_id: uuid.UUID,
        customer_phone: Optional[str] = None,
    ) -> ChargeResult:
        """
        Charge the customer for an order, at most once.

        An order already paid is returned without calling the gateway. An
        order with a pending charge is polled instead of charged again.

        Raises:
            OrderNotFoundError: If the order does not exist
            PaymentValidationError: If the order cannot be charged
            GatewayConfigurationError: If the gateway has no credentials
        """
        order = await self.orders.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        if order.payment_status == PaymentStatus.PAID:
            logger.info("Order already paid", order_id=str(order_id))
            return ChargeResult(order)

        if order.payment_status == PaymentStatus.PENDING and order.payment_transaction_id:
            logger.info(
                "Payment already in progress, polling status",
                order_id=str(order_id),
                transaction_id=order.payment_transaction_id,
            )
            response = await self.gateway.check_transaction_status(order.payment_transaction_id)
            if response.success:
                await self.orders.update_payment(order, payment_status_for(response))
                await self.session.commit()
            return ChargeResult(order, response)

        if order.status == OrderStatus.CANCELLED:
            raise PaymentValidationError("Cancelled orders cannot be charged", order_id=str(order_id))

        phone = customer_phone or order.customer_phone
        if not phone:
            raise PaymentValidationError(
                "A customer phone number is required for mobile-money payment",
                order_id=str(order_id),
            )

        response = await self.gateway.process_order_payment(str(order.id), order.price, phone)
        await self.orders.update_payment(
            order,
            payment_status_for(response),
            transaction_id=response.transaction_id or None,
        )
        await self.session.commit()

        if not response.success:
            logger.warning(
                "Customer payment failed",
                order_id=str(order_id),
                gateway_message=response.message,
            )
        return ChargeResult(order, response)

    async def handle_webhook(self, signature: str, payload: str, timestamp: str) -> WebhookResult:
        """
        Verify and apply a gateway transaction notification.

        Raises:
            WebhookSignatureError: If the signature does not match
            PaymentValidationError: If the verified payload is malformed
        """
        if not self.gateway.validate_webhook(signature, payload, timestamp):
            logger.warning(
                "Rejected MakoPay webhook with invalid signature",
                timestamp=timestamp,
                payload_size=len(payload),
                security_event=True,
            )
            raise WebhookSignatureError("Invalid webhook signature")

        try:
            data = json.loads(payload)
        except ValueError as e:
            raise PaymentValidationError("Malformed webhook payload") from e
        if not isinstance(data, dict) or not data.get("transaction_id"):
            raise PaymentValidationError("Webhook payload has no transaction id")

        reported = GatewayResponse(
            success=True,
            transaction_id=data["transaction_id"],
            status=data.get("status"),
            message=data.get("message") or "",
        )
        result = WebhookResult(transaction_id=reported.transaction_id, status=reported.status)

        order = await self.orders.get_order_by_payment_transaction(reported.transaction_id)
        if order is not None:
            payment_status = payment_status_for(reported)
            if order.payment_status == PaymentStatus.PAID and payment_status != PaymentStatus.PAID:
                logger.warning(
                    "Ignored status report for paid order",
                    order_id=str(order.id),
                    transaction_id=reported.transaction_id,
                    reported_status=reported.status.value,
                    security_event=True,
                )
            elif order.payment_status != payment_status:
                await self.orders.update_payment(order, payment_status)
                await self.session.commit()
            result.order = order
        else:
            settlement = await self.settlements.get_by_payout_transaction(reported.transaction_id)
            if settlement is not None:
                result.settlement = await self.settlement_service.apply_transaction_status(
                    settlement, reported.status, reported.message
                )

        if not result.matched:
            logger.warning(
                "Webhook for unknown transaction",
                transaction_id=reported.transaction_id,
                status=reported.status.value,
            )
        else:
            logger.info(
                "Webhook applied",
                transaction_id=reported.transaction_id,
                status=reported.status.value,
            )
        return result
