"""
Order API endpoints for customers.

This module implements the FastAPI router for placing delivery orders,
listing and tracking them, cancelling before a driver accepts, and paying
through MakoPay. Lifecycle refusals returned by the state machine are
mapped onto HTTP status codes by raise_for_outcome.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status

from makoexpress.api.deps import CurrentUser, DatabaseSession, Gateway
from makoexpress.api.limiter import limiter
from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import Order
from makoexpress.database.models.user import User, UserRole
from makoexpress.schemas.orders import (
    OrderCancelRequest,
    OrderCreateRequest,
    OrderListResponse,
    OrderPaymentRequest,
    OrderResponse,
    StatusHistoryResponse,
    TrackingResponse,
)
from makoexpress.schemas.payments import PaymentResponse
from makoexpress.services.drivers.repository import DriverRepository
from makoexpress.services.orders.enums import ActionOutcome
from makoexpress.services.orders.repository import OrderNotFoundError
from makoexpress.services.orders.service import OrderService, OrderValidationError
from makoexpress.services.orders.state_machine import OrderActionResult, OrderStateMachine
from makoexpress.services.payments.makopay_client import GatewayConfigurationError
from makoexpress.services.payments.service import PaymentService, PaymentValidationError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

_STATUS_BY_OUTCOME = {
    ActionOutcome.CONFLICT: status.HTTP_409_CONFLICT,
    ActionOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ActionOutcome.FORBIDDEN: status.HTTP_403_FORBIDDEN,
}


def raise_for_outcome(result: OrderActionResult) -> Order:
    """
    Return the order of a successful action.

    Raises:
        HTTPException: 409, 404 or 403 carrying the refusal message
    """
    if result.succeeded:
        return result.order
    raise HTTPException(status_code=_STATUS_BY_OUTCOME[result.outcome], detail=result.message)


async def _ensure_can_view(order: Order, user: User, db: DatabaseSession) -> None:
    if user.role == UserRole.ADMIN or order.customer_id == user.id:
        return
    if order.driver_id is not None:
        driver = await DriverRepository(db).get_driver_by_user_id(user.id)
        if driver is not None and driver.id == order.driver_id:
            return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your order")


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place a delivery order",
)
@limiter.limit("30/minute")
async def create_order(
    request: Request,
    payload: OrderCreateRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> OrderResponse:
    """
    Create a pending order for the authenticated customer.

    Raises:
        HTTPException: 400 if validation fails
    """
    service = OrderService(db)
    try:
        order = await service.create_order(
            customer_id=current_user.id,
            **payload.model_dump(),
        )
    except OrderValidationError as e:
        logger.warning(
            "Order validation failed",
            user_id=str(current_user.id),
            error=str(e),
            context=e.context,
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.info(
        "Order created",
        order_id=str(order.id),
        tracking_number=order.tracking_number,
        user_id=str(current_user.id),
    )
    return OrderResponse.model_validate(order)


@router.get("/mine", response_model=OrderListResponse, summary="List my orders")
async def list_my_orders(
    current_user: CurrentUser,
    db: DatabaseSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
) -> OrderListResponse:
    orders = await OrderService(db).get_customer_orders(current_user.id, limit=limit, offset=skip)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        total=len(orders),
    )


@router.get(
    "/track/{tracking_number}",
    response_model=TrackingResponse,
    summary="Track an order by tracking number",
)
async def track_order(tracking_number: str, db: DatabaseSession) -> TrackingResponse:
    """Public tracking view; the tracking number acts as the credential."""
    try:
        view = await OrderService(db).get_tracking(tracking_number)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return TrackingResponse(
        order=OrderResponse.model_validate(view.order),
        history=[StatusHistoryResponse.model_validate(h) for h in view.history],
        progress=view.progress,
    )


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
async def get_order(order_id: UUID, current_user: CurrentUser, db: DatabaseSession) -> OrderResponse:
    try:
        order = await OrderService(db).get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await _ensure_can_view(order, current_user, db)
    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/history",
    response_model=list[StatusHistoryResponse],
    summary="Order status history",
)
async def get_order_history(
    order_id: UUID, current_user: CurrentUser, db: DatabaseSession
) -> list[StatusHistoryResponse]:
    service = OrderService(db)
    try:
        order = await service.get_order(order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await _ensure_can_view(order, current_user, db)
    history = await service.get_history(order_id)
    return [StatusHistoryResponse.model_validate(h) for h in history]


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
async def cancel_order(
    order_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    gateway: Gateway,
    payload: Optional[OrderCancelRequest] = None,
) -> OrderResponse:
    """
    Cancel an order no driver has accepted yet.

    Raises:
        HTTPException: 409 once a driver is assigned, 403 for another
            customer's order, 404 if the order does not exist
    """
    customer_id = None if current_user.role == UserRole.ADMIN else current_user.id
    result = await OrderStateMachine(db, gateway).cancel(
        order_id,
        customer_id=customer_id,
        reason=payload.reason if payload else None,
    )
    return OrderResponse.model_validate(raise_for_outcome(result))


@router.post("/{order_id}/pay", response_model=PaymentResponse, summary="Pay for an order")
async def pay_order(
    order_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    gateway: Gateway,
    payload: Optional[OrderPaymentRequest] = None,
) -> PaymentResponse:
    """
    Charge the customer's mobile-money account for an order.

    Raises:
        HTTPException: 404, 403, 400 on validation, 503 if MakoPay is
            not configured
    """
    service = PaymentService(db, gateway)
    try:
        order = await service.orders.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        if order.customer_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your order")
        result = await service.charge_order(
            order_id, customer_phone=payload.customer_phone if payload else None
        )
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except PaymentValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except GatewayConfigurationError as e:
        logger.error("Payment gateway not configured", order_id=str(order_id))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service unavailable",
        ) from e

    return PaymentResponse(
        order_id=result.order.id,
        payment_status=result.order.payment_status,
        transaction_id=result.order.payment_transaction_id,
        message=result.response.message if result.response else "Order already paid",
    )
