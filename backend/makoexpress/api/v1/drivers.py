"""
Driver API endpoints.

Driver profile management (application, tier, premium eligibility,
availability, stats) and the order board drivers work from: available
orders, acceptance and status progression.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from makoexpress.api.deps import CurrentDriver, CurrentUser, DatabaseSession, Gateway
from makoexpress.api.v1.orders import raise_for_outcome
from makoexpress.core.logging import get_logger
from makoexpress.schemas.drivers import (
    DriverOnlineRequest,
    DriverRegisterRequest,
    DriverResponse,
    DriverStatsResponse,
    TierInfoResponse,
    TierResponse,
    UpgradeEligibilityResponse,
)
from makoexpress.schemas.orders import OrderListResponse, OrderResponse, OrderStatusUpdateRequest
from makoexpress.services.commission.calculator import benefits_for
from makoexpress.services.commission.tiers import get_equipment_tier_info
from makoexpress.services.drivers.service import (
    DriverService,
    DriverServiceError,
    DriverValidationError,
)
from makoexpress.services.orders.service import OrderService
from makoexpress.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.post(
    "/register",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply as a driver",
)
async def register_driver(
    payload: DriverRegisterRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> DriverResponse:
    """
    Create the driver profile of the authenticated user, pending review.

    Raises:
        HTTPException: 400 if the application is invalid, 409 if the user
            already has a profile
    """
    service = DriverService(db)
    try:
        driver = await service.register_driver(current_user.id, **payload.model_dump())
    except DriverValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DriverServiceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    logger.info("Driver registered", driver_id=str(driver.id), user_id=str(current_user.id))
    return DriverResponse.model_validate(driver)


@router.get("/me", response_model=DriverResponse, summary="My driver profile")
async def get_my_profile(driver: CurrentDriver) -> DriverResponse:
    return DriverResponse.model_validate(driver)


@router.get("/me/tier", response_model=TierResponse, summary="My equipment tier")
async def get_my_tier(driver: CurrentDriver) -> TierResponse:
    tier = driver.equipment_tier
    return TierResponse(
        tier=tier,
        commission_rate=driver.commission_rate,
        benefits=list(benefits_for(driver, tier)),
        info=TierInfoResponse.model_validate(get_equipment_tier_info(tier)),
    )


@router.get(
    "/me/upgrade",
    response_model=UpgradeEligibilityResponse,
    summary="Premium upgrade eligibility",
)
async def get_upgrade_eligibility(
    driver: CurrentDriver, db: DatabaseSession
) -> UpgradeEligibilityResponse:
    eligibility = DriverService(db).get_upgrade_eligibility(driver)
    return UpgradeEligibilityResponse.model_validate(eligibility)


@router.put("/me/online", response_model=DriverResponse, summary="Go online or offline")
async def set_online_status(
    payload: DriverOnlineRequest, driver: CurrentDriver, db: DatabaseSession
) -> DriverResponse:
    try:
        updated = await DriverService(db).set_online(driver.id, payload.is_online)
    except DriverValidationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    return DriverResponse.model_validate(updated)


@router.get("/me/stats", response_model=DriverStatsResponse, summary="My delivery stats")
async def get_my_stats(driver: CurrentDriver, db: DatabaseSession) -> DriverStatsResponse:
    stats = await DriverService(db).get_stats(driver)
    return DriverStatsResponse.model_validate(stats)


@router.get(
    "/orders/available",
    response_model=OrderListResponse,
    summary="Orders waiting for a driver",
)
async def list_available_orders(
    driver: CurrentDriver,
    db: DatabaseSession,
    limit: int = Query(50, ge=1, le=100),
) -> OrderListResponse:
    orders = await OrderService(db).get_available_orders(limit=limit)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders),
    )


@router.get("/orders/mine", response_model=OrderListResponse, summary="My assigned orders")
async def list_my_deliveries(
    driver: CurrentDriver,
    db: DatabaseSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> OrderListResponse:
    orders = await OrderService(db).get_driver_orders(driver.id, limit=limit, offset=skip)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders),
    )


@router.post(
    "/orders/{order_id}/accept",
    response_model=OrderResponse,
    summary="Accept an order",
)
async def accept_order(
    order_id: UUID,
    driver: CurrentDriver,
    db: DatabaseSession,
    gateway: Gateway,
) -> OrderResponse:
    """
    Claim a pending order; only the first driver to accept gets it.

    Raises:
        HTTPException: 409 if another driver was first, 403 if the driver
            is not approved, 404 if the order does not exist
    """
    result = await OrderStateMachine(db, gateway).accept(order_id, driver.id)
    return OrderResponse.model_validate(raise_for_outcome(result))


@router.put(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Advance delivery status",
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdateRequest,
    driver: CurrentDriver,
    db: DatabaseSession,
    gateway: Gateway,
) -> OrderResponse:
    """
    Move an assigned order to its next status. Delivering settles the
    commission and requests the driver payout.

    Raises:
        HTTPException: 409 for a skipped or repeated step, 403 if the order
            is assigned to another driver, 404 if it does not exist
    """
    result = await OrderStateMachine(db, gateway).advance(
        order_id,
        driver.id,
        payload.status,
        location=payload.location,
        notes=payload.notes,
    )
    return OrderResponse.model_validate(raise_for_outcome(result))
