"""
Test suite for customer payments and MakoPay webhook handling.

This module covers PaymentService: charging an order at most once, polling
a charge already in flight, and applying signed gateway callbacks to order
payments and driver payouts.
"""

import json
import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import WEBHOOK_SECRET, deliver_order, make_order
from makoexpress.database.models import PaymentStatus, PayoutStatus
from makoexpress.services.orders.repository import OrderNotFoundError
from makoexpress.services.orders.state_machine import OrderStateMachine
from makoexpress.services.payments import service as service_module
from makoexpress.services.payments import settlement as settlement_module
from makoexpress.services.payments.makopay_client import (
    GatewayResponse,
    TransactionStatus,
    sign_payload,
)
from makoexpress.services.payments.repository import SettlementRepository
from makoexpress.services.payments.service import (
    PaymentService,
    PaymentValidationError,
    WebhookSignatureError,
    payment_status_for,
)

TIMESTAMP = "1700000000000"


def signed(body: dict) -> tuple[str, str, str]:
    payload = json.dumps(body)
    return sign_payload(WEBHOOK_SECRET, payload, TIMESTAMP), payload, TIMESTAMP


# ============================================================================
# Status Mapping
# ============================================================================


class TestPaymentStatusFor:
    def test_completed_is_paid(self):
        response = GatewayResponse(success=True, status=TransactionStatus.COMPLETED)

        assert payment_status_for(response) == PaymentStatus.PAID

    def test_pending(self):
        response = GatewayResponse(success=True, status=TransactionStatus.PENDING)

        assert payment_status_for(response) == PaymentStatus.PENDING

    def test_unsuccessful_call_is_failed(self):
        assert payment_status_for(GatewayResponse.failure("down")) == PaymentStatus.FAILED


# ============================================================================
# Charging Orders
# ============================================================================


class TestChargeOrder:
    async def test_first_charge_calls_gateway(self, db_session, gateway, order):
        result = await PaymentService(db_session, gateway).charge_order(order.id)

        assert gateway.payments == [
            {"order_id": str(order.id), "amount": Decimal("5000"), "customer_phone": "+22376000000"}
        ]
        assert result.response.transaction_id == "TX-PAY-1"
        assert result.order.payment_status == PaymentStatus.PENDING
        assert result.order.payment_transaction_id == "TX-PAY-1"

    async def test_phone_argument_overrides_order_phone(self, db_session, gateway, order):
        await PaymentService(db_session, gateway).charge_order(order.id, customer_phone="+22379999999")

        assert gateway.payments[0]["customer_phone"] == "+22379999999"

    async def test_pending_charge_is_polled_not_repeated(self, db_session, gateway, order):
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)

        result = await service.charge_order(order.id)

        assert len(gateway.payments) == 1
        assert gateway.status_checks == ["TX-PAY-1"]
        assert result.order.payment_status == PaymentStatus.PAID

    async def test_failed_poll_keeps_pending(self, db_session, gateway, order):
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)
        gateway.status_response = GatewayResponse.failure("timeout")

        result = await service.charge_order(order.id)

        assert result.order.payment_status == PaymentStatus.PENDING

    async def test_paid_order_is_not_charged_again(self, db_session, gateway, order):
        gateway.payment_response = GatewayResponse(
            success=True, transaction_id="TX-PAY-1", status=TransactionStatus.COMPLETED
        )
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)

        result = await service.charge_order(order.id)

        assert result.response is None
        assert len(gateway.payments) == 1
        assert gateway.status_checks == []

    async def test_rejected_charge_marks_failed(self, db_session, gateway, order, monkeypatch):
        mock_logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", mock_logger)
        gateway.payment_response = GatewayResponse.failure("Insufficient balance")

        result = await PaymentService(db_session, gateway).charge_order(order.id)

        assert result.order.payment_status == PaymentStatus.FAILED
        mock_logger.warning.assert_called_once()

    async def test_missing_phone(self, db_session, gateway, customer):
        order = await make_order(db_session, customer, customer_phone=None)

        with pytest.raises(PaymentValidationError):
            await PaymentService(db_session, gateway).charge_order(order.id)

        assert gateway.payments == []

    async def test_cancelled_order(self, db_session, gateway, order, customer):
        await OrderStateMachine(db_session, gateway).cancel(order.id, customer_id=customer.id)

        with pytest.raises(PaymentValidationError):
            await PaymentService(db_session, gateway).charge_order(order.id)

    async def test_unknown_order(self, db_session, gateway):
        with pytest.raises(OrderNotFoundError):
            await PaymentService(db_session, gateway).charge_order(uuid.uuid4())


# ============================================================================
# Webhooks
# ============================================================================


class TestHandleWebhook:
    async def test_invalid_signature_is_rejected(self, db_session, gateway, order, monkeypatch):
        mock_logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", mock_logger)
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)
        _, payload, timestamp = signed({"transaction_id": "TX-PAY-1", "status": "completed"})

        with pytest.raises(WebhookSignatureError):
            await service.handle_webhook("forged", payload, timestamp)

        assert mock_logger.warning.call_args.kwargs["security_event"] is True
        assert order.payment_status == PaymentStatus.PENDING

    async def test_order_payment_confirmed(self, db_session, gateway, order):
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)

        result = await service.handle_webhook(
            *signed({"transaction_id": "TX-PAY-1", "status": "completed"})
        )

        assert result.matched
        assert result.order.id == order.id
        assert result.order.payment_status == PaymentStatus.PAID

    async def test_unknown_status_fails_payment(self, db_session, gateway, order):
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)

        result = await service.handle_webhook(
            *signed({"transaction_id": "TX-PAY-1", "status": "reversed"})
        )

        assert result.status == TransactionStatus.FAILED
        assert result.order.payment_status == PaymentStatus.FAILED

    async def test_driver_payout_confirmed(self, db_session, gateway, order, driver):
        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-9", status=TransactionStatus.PENDING
        )
        await deliver_order(db_session, gateway, order, driver)

        result = await PaymentService(db_session, gateway).handle_webhook(
            *signed({"transaction_id": "TX-PAYOUT-9", "status": "completed"})
        )

        assert result.order is None
        assert result.settlement.order_id == order.id
        assert result.settlement.payout_status == PayoutStatus.COMPLETED
        assert result.settlement.paid_out_at is not None

    async def test_late_failure_keeps_completed_payout(self, db_session, gateway, order, driver, monkeypatch):
        mock_logger = MagicMock()
        monkeypatch.setattr(settlement_module, "logger", mock_logger)
        delivery = await deliver_order(db_session, gateway, order, driver)
        paid_out_at = delivery.settlement.paid_out_at

        result = await PaymentService(db_session, gateway).handle_webhook(
            *signed({"transaction_id": "TX-PAYOUT-1", "status": "failed"})
        )

        assert result.settlement.payout_status == PayoutStatus.COMPLETED
        assert result.settlement.paid_out_at == paid_out_at
        assert mock_logger.warning.call_args.kwargs["reported_status"] == "failed"
        failed = await SettlementRepository(db_session).list_by_status(PayoutStatus.FAILED)
        assert list(failed) == []

    async def test_late_failure_keeps_paid_order(self, db_session, gateway, order, monkeypatch):
        service = PaymentService(db_session, gateway)
        await service.charge_order(order.id)
        await service.handle_webhook(*signed({"transaction_id": "TX-PAY-1", "status": "completed"}))
        mock_logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", mock_logger)

        result = await service.handle_webhook(
            *signed({"transaction_id": "TX-PAY-1", "status": "failed"})
        )

        assert result.order.payment_status == PaymentStatus.PAID
        assert mock_logger.warning.call_args.kwargs["security_event"] is True
        await db_session.refresh(order)
        assert order.payment_status == PaymentStatus.PAID

    async def test_unknown_transaction(self, db_session, gateway, monkeypatch):
        mock_logger = MagicMock()
        monkeypatch.setattr(service_module, "logger", mock_logger)

        result = await PaymentService(db_session, gateway).handle_webhook(
            *signed({"transaction_id": "TX-NOPE", "status": "completed"})
        )

        assert result.matched is False
        mock_logger.warning.assert_called_once()

    async def test_malformed_payload(self, db_session, gateway):
        payload = "not json"
        signature = sign_payload(WEBHOOK_SECRET, payload, TIMESTAMP)

        with pytest.raises(PaymentValidationError):
            await PaymentService(db_session, gateway).handle_webhook(signature, payload, TIMESTAMP)

    async def test_missing_transaction_id(self, db_session, gateway):
        with pytest.raises(PaymentValidationError):
            await PaymentService(db_session, gateway).handle_webhook(*signed({"status": "completed"}))
