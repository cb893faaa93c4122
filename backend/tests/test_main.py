"""
Test suite for the FastAPI application shell.

Covers health endpoints, request correlation headers and the global
exception handlers.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi import status

from conftest import auth_headers
from makoexpress import main as main_module
from makoexpress.main import app


# ============================================================================
# Health Endpoints
# ============================================================================


class TestHealthEndpoints:
    async def test_health_check(self, api_client):
        response = await api_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "MAKOEXPRESS API"
        assert data["environment"] == "test"

    async def test_liveness(self, api_client):
        response = await api_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    async def test_ready_when_database_is_up(self, api_client, monkeypatch):
        monkeypatch.setattr(main_module, "check_database_health", AsyncMock(return_value=True))

        response = await api_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] == "healthy"
        assert data["payment_gateway"] in ("configured", "not_configured")

    async def test_not_ready_when_database_is_down(self, api_client, monkeypatch):
        monkeypatch.setattr(main_module, "check_database_health", AsyncMock(return_value=False))

        response = await api_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["database"] == "unhealthy"


# ============================================================================
# Request Correlation
# ============================================================================


class TestRequestLoggingMiddleware:
    async def test_request_id_is_generated(self, api_client):
        response = await api_client.get("/health")

        assert response.headers.get("X-Request-ID")

    async def test_client_request_id_is_echoed(self, api_client):
        response = await api_client.get("/health", headers={"X-Request-ID": "req-12345"})

        assert response.headers["X-Request-ID"] == "req-12345"

    async def test_request_ids_are_unique(self, api_client):
        first = await api_client.get("/health")
        second = await api_client.get("/health")

        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


# ============================================================================
# Exception Handlers
# ============================================================================


class TestExceptionHandlers:
    async def test_validation_error_shape(self, api_client, customer, order):
        response = await api_client.post(
            f"/api/v1/ratings/{order.id}",
            json={"rating": 9},
            headers=auth_headers(customer.id),
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] == "Validation Error"
        assert data["details"][0]["loc"] == ["body", "rating"]
        assert data["request_id"] == response.headers["X-Request-ID"]

    async def test_unknown_route(self, api_client):
        response = await api_client.get("/does-not-exist")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_routes_are_mounted_under_api_prefix(self):
        paths = set(app.openapi()["paths"])

        assert "/api/v1/orders" in paths
        assert "/api/v1/drivers/orders/{order_id}/accept" in paths
        assert "/api/v1/webhooks/makopay" in paths
        assert "/api/v1/admin/settlements/{order_id}/retry" in paths


@pytest.mark.parametrize("path", ["/health", "/live"])
async def test_health_endpoints_need_no_auth(api_client, path):
    response = await api_client.get(path)

    assert response.status_code == status.HTTP_200_OK
