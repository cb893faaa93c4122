"""
Tests for driver ratings.
"""

import uuid
from decimal import Decimal

import pytest

from conftest import auth_headers, deliver_order, make_order, make_user
from makoexpress.services.orders.repository import OrderNotFoundError
from makoexpress.services.ratings.service import (
    RatingConflictError,
    RatingPermissionError,
    RatingService,
    RatingValidationError,
)


class TestRateDriver:
    async def test_rating_updates_driver_average(self, db_session, gateway, customer, driver):
        first = await make_order(db_session, customer)
        second = await make_order(db_session, customer)
        await deliver_order(db_session, gateway, first, driver)
        await deliver_order(db_session, gateway, second, driver)
        service = RatingService(db_session)

        await service.rate_driver(first.id, customer.id, 5, comment="Rapide")
        entry = await service.rate_driver(second.id, customer.id, 4)

        assert entry.driver_id == driver.id
        assert entry.rating == 4
        await db_session.refresh(driver)
        assert driver.rating == Decimal("4.50")

    async def test_order_can_be_rated_once(self, db_session, gateway, customer, order, driver):
        await deliver_order(db_session, gateway, order, driver)
        service = RatingService(db_session)
        await service.rate_driver(order.id, customer.id, 5)

        with pytest.raises(RatingConflictError):
            await service.rate_driver(order.id, customer.id, 3)

    async def test_undelivered_order(self, db_session, customer, order):
        with pytest.raises(RatingValidationError):
            await RatingService(db_session).rate_driver(order.id, customer.id, 5)

    async def test_only_ordering_customer(self, db_session, gateway, order, driver):
        await deliver_order(db_session, gateway, order, driver)
        stranger = await make_user(db_session, first_name="Fatou")

        with pytest.raises(RatingPermissionError):
            await RatingService(db_session).rate_driver(order.id, stranger.id, 5)

    @pytest.mark.parametrize("score", [0, 6, True, 4.5])
    async def test_score_out_of_range(self, db_session, customer, order, score):
        with pytest.raises(RatingValidationError):
            await RatingService(db_session).rate_driver(order.id, customer.id, score)

    async def test_unknown_order(self, db_session, customer):
        with pytest.raises(OrderNotFoundError):
            await RatingService(db_session).rate_driver(uuid.uuid4(), customer.id, 5)


class TestRatingEndpoint:
    async def test_rate_delivered_order(self, api_client, db_session, gateway, customer, order, driver):
        await deliver_order(db_session, gateway, order, driver)

        response = await api_client.post(
            f"/api/v1/ratings/{order.id}",
            json={"rating": 5, "comment": "Tres bien"},
            headers=auth_headers(customer.id),
        )

        assert response.status_code == 201
        assert response.json()["driver_id"] == str(driver.id)

    async def test_rate_pending_order(self, api_client, customer, order):
        response = await api_client.post(
            f"/api/v1/ratings/{order.id}", json={"rating": 5}, headers=auth_headers(customer.id)
        )

        assert response.status_code == 400

    async def test_rate_twice(self, api_client, db_session, gateway, customer, order, driver):
        await deliver_order(db_session, gateway, order, driver)
        headers = auth_headers(customer.id)

        await api_client.post(f"/api/v1/ratings/{order.id}", json={"rating": 5}, headers=headers)
        response = await api_client.post(f"/api/v1/ratings/{order.id}", json={"rating": 1}, headers=headers)

        assert response.status_code == 409
