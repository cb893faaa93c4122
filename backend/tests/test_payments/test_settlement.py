"""
Tests for delivery settlement and driver payouts.

Settlements are produced by driving real orders to delivered through the
state machine, then payout follow-up (retry and reconciliation) is
exercised against the recording gateway.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import deliver_order, make_order
from makoexpress.database.models import PayoutStatus, payout_reference
from makoexpress.services.commission.calculator import EquipmentTier
from makoexpress.services.payments import settlement as settlement_module
from makoexpress.services.payments.makopay_client import (
    GatewayConfigurationError,
    GatewayResponse,
    TransactionStatus,
)
from makoexpress.services.payments.repository import SettlementRepository
from makoexpress.services.payments.settlement import (
    PayoutStateError,
    SettlementNotFoundError,
    SettlementService,
    payout_status_for,
)


def failed_transfer(message: str = "Insufficient float") -> GatewayResponse:
    return GatewayResponse(success=False, status=TransactionStatus.FAILED, message=message)


# ============================================================================
# Status Mapping
# ============================================================================


class TestPayoutStatusFor:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (TransactionStatus.PENDING, PayoutStatus.PENDING),
            (TransactionStatus.COMPLETED, PayoutStatus.COMPLETED),
            (TransactionStatus.FAILED, PayoutStatus.FAILED),
        ],
    )
    def test_successful_call_maps_status(self, status, expected):
        assert payout_status_for(GatewayResponse(success=True, status=status)) == expected

    def test_unsuccessful_call_is_failed(self):
        response = GatewayResponse(success=False, status=TransactionStatus.COMPLETED)

        assert payout_status_for(response) == PayoutStatus.FAILED


# ============================================================================
# Settlement on Delivery
# ============================================================================


class TestSettlementOnDelivery:
    async def test_premium_split_and_completed_payout(self, db_session, gateway, order, premium_driver):
        result = await deliver_order(db_session, gateway, order, premium_driver)
        settlement = result.settlement

        assert settlement.base_amount == Decimal("5000")
        assert settlement.commission_rate == Decimal("0.30")
        assert settlement.commission_amount == Decimal("1500.00")
        assert settlement.driver_earnings == Decimal("3500.00")
        assert settlement.admin_earnings == Decimal("1500.00")
        assert settlement.tier == EquipmentTier.PREMIUM
        assert settlement.payout_status == PayoutStatus.COMPLETED
        assert settlement.payout_transaction_id == "TX-PAYOUT-1"
        assert settlement.payout_attempts == 1
        assert settlement.paid_out_at is not None

    async def test_standard_split(self, db_session, gateway, order, driver):
        result = await deliver_order(db_session, gateway, order, driver)

        assert result.settlement.commission_amount == Decimal("1000.00")
        assert result.settlement.driver_earnings == Decimal("4000.00")
        assert result.settlement.tier == EquipmentTier.STANDARD

    async def test_transfer_request(self, db_session, gateway, order, premium_driver):
        await deliver_order(db_session, gateway, order, premium_driver)

        assert len(gateway.transfers) == 1
        transfer = gateway.transfers[0]
        assert transfer["amount"] == Decimal("3500.00")
        assert transfer["driver_phone"] == premium_driver.phone
        assert transfer["order_id"] == str(order.id)
        assert transfer["reference"] == payout_reference(premium_driver.id, order.id)

    async def test_gateway_pending_keeps_payout_pending(self, db_session, gateway, order, driver):
        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-9", status=TransactionStatus.PENDING
        )

        result = await deliver_order(db_session, gateway, order, driver)

        assert result.settlement.payout_status == PayoutStatus.PENDING
        assert result.settlement.payout_transaction_id == "TX-PAYOUT-9"
        assert result.settlement.paid_out_at is None

    async def test_pending_without_transaction_id_is_failed(self, db_session, gateway, order, driver):
        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="", status=TransactionStatus.PENDING
        )

        result = await deliver_order(db_session, gateway, order, driver)

        assert result.settlement.payout_status == PayoutStatus.FAILED
        assert result.settlement.payout_transaction_id is None

        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-2", status=TransactionStatus.COMPLETED
        )
        settlement = await SettlementService(db_session, gateway).retry_payout(order.id)

        assert settlement.payout_status == PayoutStatus.COMPLETED
        assert settlement.payout_transaction_id == "TX-PAYOUT-2"

    async def test_rejected_transfer_marks_failed(self, db_session, gateway, order, driver, monkeypatch):
        mock_logger = MagicMock()
        monkeypatch.setattr(settlement_module, "logger", mock_logger)
        gateway.transfer_response = failed_transfer()

        result = await deliver_order(db_session, gateway, order, driver)

        assert result.succeeded
        assert result.settlement.payout_status == PayoutStatus.FAILED
        assert result.settlement.payout_message == "Insufficient float"
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["requires_operator_action"] is True
        assert mock_logger.error.call_args.kwargs["reference"] == payout_reference(driver.id, order.id)

    async def test_network_error_marks_failed(self, db_session, gateway, order, driver):
        gateway.transfer_error = httpx.ConnectError("connection refused")

        result = await deliver_order(db_session, gateway, order, driver)

        assert result.settlement.payout_status == PayoutStatus.FAILED
        assert result.settlement.payout_message.startswith("Payment gateway error")

    async def test_unconfigured_gateway_marks_failed(self, db_session, gateway, order, driver):
        gateway.transfer_error = GatewayConfigurationError("MakoPay credentials are not configured")

        result = await deliver_order(db_session, gateway, order, driver)

        assert result.settlement.payout_status == PayoutStatus.FAILED
        assert result.settlement.payout_attempts == 1


# ============================================================================
# Payout Follow-up
# ============================================================================


class TestRetryPayout:
    async def test_retry_after_failure(self, db_session, gateway, order, driver):
        gateway.transfer_response = failed_transfer()
        await deliver_order(db_session, gateway, order, driver)

        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-2", status=TransactionStatus.COMPLETED
        )
        settlement = await SettlementService(db_session, gateway).retry_payout(order.id)

        assert settlement.payout_status == PayoutStatus.COMPLETED
        assert settlement.payout_attempts == 2
        assert settlement.payout_transaction_id == "TX-PAYOUT-2"
        assert len(gateway.transfers) == 2
        assert gateway.transfers[0]["reference"] == gateway.transfers[1]["reference"]

    async def test_retry_after_gateway_crash(self, db_session, gateway, order, driver):
        gateway.transfer_error = RuntimeError("unexpected gateway reply")
        await deliver_order(db_session, gateway, order, driver)

        gateway.transfer_error = None
        settlement = await SettlementService(db_session, gateway).retry_payout(order.id)

        assert settlement.payout_status == PayoutStatus.COMPLETED
        assert settlement.payout_attempts == 2
        assert settlement.payout_transaction_id == "TX-PAYOUT-1"

    async def test_completed_payout_cannot_be_retried(self, db_session, gateway, order, driver):
        await deliver_order(db_session, gateway, order, driver)

        with pytest.raises(PayoutStateError):
            await SettlementService(db_session, gateway).retry_payout(order.id)

        assert len(gateway.transfers) == 1

    async def test_unsettled_order(self, db_session, gateway, order):
        with pytest.raises(SettlementNotFoundError):
            await SettlementService(db_session, gateway).retry_payout(order.id)


class TestReconcilePayout:
    async def test_pending_payout_completes(self, db_session, gateway, order, driver):
        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-9", status=TransactionStatus.PENDING
        )
        await deliver_order(db_session, gateway, order, driver)
        gateway.status_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-9", status=TransactionStatus.COMPLETED
        )

        settlement = await SettlementService(db_session, gateway).reconcile_payout(order.id)

        assert gateway.status_checks == ["TX-PAYOUT-9"]
        assert settlement.payout_status == PayoutStatus.COMPLETED
        assert settlement.paid_out_at is not None

    async def test_failed_poll_leaves_payout_pending(self, db_session, gateway, order, driver):
        gateway.transfer_response = GatewayResponse(
            success=True, transaction_id="TX-PAYOUT-9", status=TransactionStatus.PENDING
        )
        await deliver_order(db_session, gateway, order, driver)
        gateway.status_response = GatewayResponse.failure("timeout")

        settlement = await SettlementService(db_session, gateway).reconcile_payout(order.id)

        assert settlement.payout_status == PayoutStatus.PENDING

    async def test_completed_payout_is_not_polled(self, db_session, gateway, order, driver):
        await deliver_order(db_session, gateway, order, driver)

        with pytest.raises(PayoutStateError):
            await SettlementService(db_session, gateway).reconcile_payout(order.id)

        assert gateway.status_checks == []


class TestPlatformCommission:
    async def test_commission_totals_across_settlements(self, db_session, gateway, customer, driver, premium_driver):
        first = await make_order(db_session, customer, price=Decimal("5000"))
        second = await make_order(db_session, customer, price=Decimal("10000"))
        await deliver_order(db_session, gateway, first, premium_driver)
        await deliver_order(db_session, gateway, second, driver)

        repository = SettlementRepository(db_session)

        assert await repository.sum_platform_commission() == Decimal("3500.00")
        assert await repository.sum_driver_earnings(driver.id) == Decimal("8000.00")
