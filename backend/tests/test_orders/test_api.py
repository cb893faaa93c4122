"""
API tests for the order endpoints and the driver order board.

Exercises the HTTP surface end to end: placing an order as a customer,
claiming and advancing it as a driver, and the status codes lifecycle
refusals are mapped onto.
"""

import uuid

from conftest import auth_headers, make_driver, make_user

ORDERS_URL = "/api/v1/orders"
BOARD_URL = "/api/v1/drivers/orders"


def order_payload(**overrides):
    payload = {
        "pickup_address": "Marche de Medina, Bamako",
        "delivery_address": "ACI 2000, Bamako",
        "package_type": "parcel",
        "weight": "2kg",
        "urgency": "express",
        "price": "5000",
        "customer_phone": "+223 76 00 00 00",
    }
    payload.update(overrides)
    return payload


# ============================================================================
# Customer Endpoints
# ============================================================================


class TestCreateOrder:
    async def test_create_order(self, api_client, customer):
        response = await api_client.post(
            ORDERS_URL, json=order_payload(), headers=auth_headers(customer.id)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["customer_id"] == str(customer.id)
        assert body["driver_id"] is None
        assert body["customer_phone"] == "+22376000000"
        assert body["tracking_number"].startswith("MAKO")

    async def test_zero_price_is_rejected(self, api_client, customer):
        response = await api_client.post(
            ORDERS_URL, json=order_payload(price="0"), headers=auth_headers(customer.id)
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    async def test_requires_authentication(self, api_client):
        response = await api_client.post(ORDERS_URL, json=order_payload())

        assert response.status_code == 401

    async def test_invalid_token(self, api_client):
        response = await api_client.post(
            ORDERS_URL, json=order_payload(), headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401


class TestReadOrders:
    async def test_list_my_orders(self, api_client, customer, order):
        response = await api_client.get(f"{ORDERS_URL}/mine", headers=auth_headers(customer.id))

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["orders"][0]["id"] == str(order.id)

    async def test_get_own_order(self, api_client, customer, order):
        response = await api_client.get(f"{ORDERS_URL}/{order.id}", headers=auth_headers(customer.id))

        assert response.status_code == 200
        assert response.json()["tracking_number"] == order.tracking_number

    async def test_stranger_cannot_view(self, api_client, db_session, order):
        stranger = await make_user(db_session, first_name="Fatou")

        response = await api_client.get(f"{ORDERS_URL}/{order.id}", headers=auth_headers(stranger.id))

        assert response.status_code == 403

    async def test_unknown_order(self, api_client, customer):
        response = await api_client.get(
            f"{ORDERS_URL}/{uuid.uuid4()}", headers=auth_headers(customer.id)
        )

        assert response.status_code == 404

    async def test_public_tracking(self, api_client, order):
        response = await api_client.get(f"{ORDERS_URL}/track/{order.tracking_number}")

        assert response.status_code == 200
        body = response.json()
        assert body["order"]["id"] == str(order.id)
        assert body["progress"] == 0
        assert [h["status"] for h in body["history"]] == ["pending"]

    async def test_unknown_tracking_number(self, api_client):
        response = await api_client.get(f"{ORDERS_URL}/track/MAKO0000")

        assert response.status_code == 404


class TestCancelOrder:
    async def test_cancel_pending_order(self, api_client, customer, order):
        response = await api_client.post(
            f"{ORDERS_URL}/{order.id}/cancel",
            json={"reason": "Wrong address"},
            headers=auth_headers(customer.id),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    async def test_cancel_after_accept_conflicts(self, api_client, customer, driver, order):
        accepted = await api_client.post(
            f"{BOARD_URL}/{order.id}/accept", headers=auth_headers(driver.user_id)
        )
        assert accepted.status_code == 200

        response = await api_client.post(
            f"{ORDERS_URL}/{order.id}/cancel", headers=auth_headers(customer.id)
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot cancel, a driver has already been assigned"

    async def test_admin_can_cancel(self, api_client, admin, order):
        response = await api_client.post(f"{ORDERS_URL}/{order.id}/cancel", headers=auth_headers(admin.id))

        assert response.status_code == 200


# ============================================================================
# Driver Order Board
# ============================================================================


class TestDriverBoard:
    async def test_available_orders(self, api_client, driver, order):
        response = await api_client.get(f"{BOARD_URL}/available", headers=auth_headers(driver.user_id))

        assert response.status_code == 200
        assert [o["id"] for o in response.json()["orders"]] == [str(order.id)]

    async def test_board_requires_driver_profile(self, api_client, customer):
        response = await api_client.get(f"{BOARD_URL}/available", headers=auth_headers(customer.id))

        assert response.status_code == 403

    async def test_second_accept_conflicts(self, api_client, db_session, driver, order):
        other = await make_driver(db_session)
        first = await api_client.post(f"{BOARD_URL}/{order.id}/accept", headers=auth_headers(driver.user_id))

        second = await api_client.post(f"{BOARD_URL}/{order.id}/accept", headers=auth_headers(other.user_id))

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["detail"] == "Order no longer available"

    async def test_delivery_flow(self, api_client, gateway, admin, customer, premium_driver, order):
        headers = auth_headers(premium_driver.user_id)
        await api_client.post(f"{BOARD_URL}/{order.id}/accept", headers=headers)

        for status in ("picked_up", "in_transit", "delivered"):
            response = await api_client.put(
                f"{BOARD_URL}/{order.id}/status",
                json={"status": status, "location": "Bamako"},
                headers=headers,
            )
            assert response.status_code == 200
            assert response.json()["status"] == status

        assert response.json()["delivered_at"] is not None
        assert gateway.transfers[0]["amount"] == 3500

        mine = await api_client.get(f"{BOARD_URL}/mine", headers=headers)
        assert mine.json()["total"] == 1

        history = await api_client.get(f"{ORDERS_URL}/{order.id}/history", headers=auth_headers(customer.id))
        assert [h["status"] for h in history.json()] == [
            "pending",
            "accepted",
            "picked_up",
            "in_transit",
            "delivered",
        ]

        settlement = await api_client.get(
            f"/api/v1/admin/settlements/{order.id}", headers=auth_headers(admin.id)
        )
        assert settlement.status_code == 200
        assert settlement.json()["commission_amount"] == "1500.00"
        assert settlement.json()["payout_status"] == "completed"

    async def test_skipped_step_conflicts(self, api_client, driver, order):
        headers = auth_headers(driver.user_id)
        await api_client.post(f"{BOARD_URL}/{order.id}/accept", headers=headers)

        response = await api_client.put(
            f"{BOARD_URL}/{order.id}/status", json={"status": "delivered"}, headers=headers
        )

        assert response.status_code == 409

    async def test_other_driver_cannot_advance(self, api_client, db_session, driver, order):
        other = await make_driver(db_session)
        await api_client.post(f"{BOARD_URL}/{order.id}/accept", headers=auth_headers(driver.user_id))

        response = await api_client.put(
            f"{BOARD_URL}/{order.id}/status",
            json={"status": "picked_up"},
            headers=auth_headers(other.user_id),
        )

        assert response.status_code == 403

    async def test_unknown_order(self, api_client, driver):
        response = await api_client.post(
            f"{BOARD_URL}/{uuid.uuid4()}/accept", headers=auth_headers(driver.user_id)
        )

        assert response.status_code == 404
