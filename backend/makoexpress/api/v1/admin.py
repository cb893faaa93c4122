"""
Admin API endpoints.

Driver review, equipment issuance, payout follow-up for the operator and
platform statistics. Every route requires the admin role.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from makoexpress.api.deps import CurrentAdmin, DatabaseSession, Gateway
from makoexpress.core.logging import get_logger
from makoexpress.database.models.driver import DriverStatus
from makoexpress.database.models.settlement import PayoutStatus
from makoexpress.schemas.drivers import (
    DriverEquipmentRequest,
    DriverResponse,
    DriverStatusUpdateRequest,
)
from makoexpress.schemas.payments import PlatformStatsResponse, SettlementResponse
from makoexpress.services.drivers.service import (
    DriverNotFoundError,
    DriverService,
    TierUpgradeNotAllowedError,
)
from makoexpress.services.orders.service import OrderService
from makoexpress.services.payments.makopay_client import GatewayConfigurationError
from makoexpress.services.payments.repository import SettlementRepository
from makoexpress.services.payments.settlement import (
    PayoutStateError,
    SettlementNotFoundError,
    SettlementService,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/drivers", response_model=list[DriverResponse], summary="List drivers")
async def list_drivers(
    admin: CurrentAdmin,
    db: DatabaseSession,
    status_filter: Optional[DriverStatus] = Query(None, alias="status"),
) -> list[DriverResponse]:
    drivers = await DriverService(db).list_drivers(status=status_filter)
    return [DriverResponse.model_validate(d) for d in drivers]


@router.put(
    "/drivers/{driver_id}/status",
    response_model=DriverResponse,
    summary="Approve, reject or suspend a driver",
)
async def update_driver_status(
    driver_id: UUID,
    payload: DriverStatusUpdateRequest,
    admin: CurrentAdmin,
    db: DatabaseSession,
) -> DriverResponse:
    try:
        driver = await DriverService(db).update_status(
            driver_id, payload.status, rejection_reason=payload.rejection_reason
        )
    except DriverNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    logger.info(
        "Driver reviewed",
        driver_id=str(driver_id),
        admin_id=str(admin.id),
        status=payload.status.value,
    )
    return DriverResponse.model_validate(driver)


@router.put(
    "/drivers/{driver_id}/equipment",
    response_model=DriverResponse,
    summary="Record issued equipment",
)
async def issue_equipment(
    driver_id: UUID,
    payload: DriverEquipmentRequest,
    admin: CurrentAdmin,
    db: DatabaseSession,
) -> DriverResponse:
    """
    Raises:
        HTTPException: 404 if the driver does not exist, 403 if the GPS bag
            and insurance are issued to a driver not eligible for premium
    """
    try:
        driver = await DriverService(db).issue_equipment(
            driver_id,
            has_gps_equipment=payload.has_gps_equipment,
            has_insurance=payload.has_insurance,
            has_uniform=payload.has_uniform,
        )
    except DriverNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except TierUpgradeNotAllowedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    return DriverResponse.model_validate(driver)


@router.get(
    "/settlements",
    response_model=list[SettlementResponse],
    summary="Payouts awaiting operator follow-up",
)
async def list_settlements(
    admin: CurrentAdmin,
    db: DatabaseSession,
    payout_status: PayoutStatus = Query(PayoutStatus.FAILED),
    limit: int = Query(100, ge=1, le=500),
) -> list[SettlementResponse]:
    """Oldest first; defaults to failed payouts."""
    settlements = await SettlementRepository(db).list_by_status(payout_status, limit=limit)
    return [SettlementResponse.model_validate(s) for s in settlements]


@router.get(
    "/settlements/{order_id}",
    response_model=SettlementResponse,
    summary="Settlement of a delivered order",
)
async def get_settlement(
    order_id: UUID, admin: CurrentAdmin, db: DatabaseSession, gateway: Gateway
) -> SettlementResponse:
    settlement = await SettlementService(db, gateway).settlements.get_by_order_id(order_id)
    if settlement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Settlement not found")
    return SettlementResponse.model_validate(settlement)


async def _payout_action(action, order_id: UUID) -> SettlementResponse:
    try:
        settlement = await action(order_id)
    except SettlementNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except PayoutStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except GatewayConfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service unavailable",
        ) from e
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/settlements/{order_id}/retry",
    response_model=SettlementResponse,
    summary="Retry a failed driver payout",
)
async def retry_payout(
    order_id: UUID, admin: CurrentAdmin, db: DatabaseSession, gateway: Gateway
) -> SettlementResponse:
    logger.info("Payout retry requested", order_id=str(order_id), admin_id=str(admin.id))
    return await _payout_action(SettlementService(db, gateway).retry_payout, order_id)


@router.post(
    "/settlements/{order_id}/reconcile",
    response_model=SettlementResponse,
    summary="Poll the gateway for a pending payout",
)
async def reconcile_payout(
    order_id: UUID, admin: CurrentAdmin, db: DatabaseSession, gateway: Gateway
) -> SettlementResponse:
    return await _payout_action(SettlementService(db, gateway).reconcile_payout, order_id)


@router.get("/stats", response_model=PlatformStatsResponse, summary="Platform statistics")
async def get_platform_stats(admin: CurrentAdmin, db: DatabaseSession) -> PlatformStatsResponse:
    stats = await OrderService(db).get_platform_stats()
    return PlatformStatsResponse.model_validate(stats)
