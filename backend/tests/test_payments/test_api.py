"""
API tests for the order payment and MakoPay webhook endpoints.
"""

import json
import uuid

from conftest import WEBHOOK_SECRET, auth_headers, make_user
from makoexpress.services.payments.makopay_client import sign_payload
from makoexpress.services.payments.service import PaymentService

WEBHOOK_URL = "/api/v1/webhooks/makopay"
TIMESTAMP = "1700000000000"


def webhook_request(body: dict, secret: str = WEBHOOK_SECRET) -> dict:
    payload = json.dumps(body)
    return {
        "content": payload,
        "headers": {
            "Content-Type": "application/json",
            "X-Signature": sign_payload(secret, payload, TIMESTAMP),
            "X-Timestamp": TIMESTAMP,
        },
    }


# ============================================================================
# Pay Endpoint
# ============================================================================


class TestPayOrder:
    async def test_customer_pays_own_order(self, api_client, gateway, order, customer):
        response = await api_client.post(
            f"/api/v1/orders/{order.id}/pay", headers=auth_headers(customer.id)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["order_id"] == str(order.id)
        assert body["payment_status"] == "pending"
        assert body["transaction_id"] == "TX-PAY-1"
        assert len(gateway.payments) == 1

    async def test_other_customer_is_forbidden(self, api_client, db_session, gateway, order):
        stranger = await make_user(db_session, first_name="Fatou")

        response = await api_client.post(
            f"/api/v1/orders/{order.id}/pay", headers=auth_headers(stranger.id)
        )

        assert response.status_code == 403
        assert gateway.payments == []

    async def test_unknown_order(self, api_client, customer):
        response = await api_client.post(
            f"/api/v1/orders/{uuid.uuid4()}/pay", headers=auth_headers(customer.id)
        )

        assert response.status_code == 404

    async def test_requires_authentication(self, api_client, order):
        response = await api_client.post(f"/api/v1/orders/{order.id}/pay")

        assert response.status_code == 401


# ============================================================================
# Webhook Endpoint
# ============================================================================


class TestMakoPayWebhook:
    async def test_signed_callback_updates_payment(self, api_client, db_session, gateway, order):
        await PaymentService(db_session, gateway).charge_order(order.id)

        response = await api_client.post(
            WEBHOOK_URL, **webhook_request({"transaction_id": "TX-PAY-1", "status": "completed"})
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "transaction_id": "TX-PAY-1",
            "status": "completed",
            "matched": True,
        }

        await db_session.refresh(order)
        assert order.payment_status.value == "paid"

    async def test_forged_signature(self, api_client):
        request = webhook_request({"transaction_id": "TX-PAY-1", "status": "completed"}, secret="wrong")

        response = await api_client.post(WEBHOOK_URL, **request)

        assert response.status_code == 401

    async def test_missing_signature_headers(self, api_client):
        response = await api_client.post(
            WEBHOOK_URL, json={"transaction_id": "TX-PAY-1", "status": "completed"}
        )

        assert response.status_code == 401

    async def test_signed_but_malformed(self, api_client):
        response = await api_client.post(WEBHOOK_URL, **webhook_request({"status": "completed"}))

        assert response.status_code == 400

    async def test_unknown_transaction_is_acknowledged(self, api_client):
        response = await api_client.post(
            WEBHOOK_URL, **webhook_request({"transaction_id": "TX-NOPE", "status": "failed"})
        )

        assert response.status_code == 200
        assert response.json()["matched"] is False
