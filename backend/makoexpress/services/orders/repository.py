"""
Order data access repository with guarded state transitions.

This module implements the OrderRepository class. Every lifecycle write is a
single conditional UPDATE that only matches the row while it is still in the
expected state; the affected row count tells the caller whether it won. There
is never a read-then-write pair on the order status, so concurrent requests
cannot overwrite each other's assignment.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import Order, OrderStatus, PaymentStatus

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when order is not found."""

    pass


class OrderCreationError(OrderRepositoryError):
    """Raised when order creation fails."""

    pass


class OrderUpdateError(OrderRepositoryError):
    """Raised when order update fails."""

    pass


class OrderRepository:
    """
    Repository for order data access operations.

    The try_* methods return True when the guarded write matched the order
    and False when the order was not in the expected state (or does not
    exist). They never raise for a lost race.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def create_order(self, **fields: Any) -> Order:
        """
        Insert a new pending order.

        Raises:
            OrderCreationError: If the insert fails
        """
        tracking_number = fields.get("tracking_number")
        try:
            order = Order(
                status=OrderStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                driver_id=None,
                **fields,
            )
            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order created",
                order_id=str(order.id),
                tracking_number=tracking_number,
                customer_id=str(order.customer_id),
            )
            return order

        except IntegrityError as e:
            logger.error(
                "Order creation failed - integrity error",
                error=str(e),
                tracking_number=tracking_number,
            )
            raise OrderCreationError(
                "Order creation failed due to data integrity violation",
                tracking_number=tracking_number,
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Order creation failed - database error",
                error=str(e),
                tracking_number=tracking_number,
            )
            raise OrderCreationError(
                "Order creation failed due to database error",
                tracking_number=tracking_number,
                error=str(e),
            ) from e

    async def get_order_by_id(
        self,
        order_id: uuid.UUID,
        refresh: bool = False,
    ) -> Optional[Order]:
        """
        Retrieve order by ID.

        Args:
            order_id: Order identifier
            refresh: Overwrite any copy already held by the session with the
                current row, used after a guarded write

        Raises:
            OrderRepositoryError: If the query fails
        """
        try:
            return await self.session.get(Order, order_id, populate_existing=refresh)
        except SQLAlchemyError as e:
            logger.error("Failed to retrieve order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to retrieve order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_order_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        try:
            result = await self.session.execute(
                select(Order).where(Order.tracking_number == tracking_number)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to retrieve order by tracking number",
                tracking_number=tracking_number,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to retrieve order by tracking number",
                tracking_number=tracking_number,
                error=str(e),
            ) from e

    async def tracking_number_exists(self, tracking_number: str) -> bool:
        order = await self.get_order_by_tracking_number(tracking_number)
        return order is not None

    async def _list(self, stmt, **context: Any) -> Sequence[Order]:
        try:
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", error=str(e), **context)
            raise OrderRepositoryError("Failed to list orders", error=str(e), **context) from e

    async def get_customer_orders(
        self,
        customer_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Order]:
        """Orders placed by a customer, newest first."""
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at.desc(), Order.id)
            .limit(limit)
            .offset(offset)
        )
        return await self._list(stmt, customer_id=str(customer_id))

    async def get_driver_orders(
        self,
        driver_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[Order]:
        """Orders assigned to a driver, newest first."""
        stmt = (
            select(Order)
            .where(Order.driver_id == driver_id)
            .order_by(Order.created_at.desc(), Order.id)
            .limit(limit)
            .offset(offset)
        )
        return await self._list(stmt, driver_id=str(driver_id))

    async def get_available_orders(self, limit: int = 50) -> Sequence[Order]:
        """Pending, unassigned orders, newest first."""
        stmt = (
            select(Order)
            .where(Order.status == OrderStatus.PENDING, Order.driver_id.is_(None))
            .order_by(Order.created_at.desc(), Order.id)
            .limit(limit)
        )
        return await self._list(stmt)

    async def _guarded_update(self, stmt, operation: str, order_id: uuid.UUID) -> bool:
        try:
            result = await self.session.execute(
                stmt.execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            logger.error(
                "Guarded order update failed",
                operation=operation,
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError(
                "Order update failed due to database error",
                operation=operation,
                order_id=str(order_id),
                error=str(e),
            ) from e

        matched = result.rowcount == 1
        logger.debug(
            "Guarded order update",
            operation=operation,
            order_id=str(order_id),
            matched=matched,
        )
        return matched

    async def try_assign_driver(self, order_id: uuid.UUID, driver_id: uuid.UUID) -> bool:
        """
        Assign a driver if the order is still pending and unassigned.

        Returns:
            True if this call won the assignment
        """
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
                Order.driver_id.is_(None),
            )
            .values(
                driver_id=driver_id,
                status=OrderStatus.ACCEPTED,
                updated_at=func.now(),
            )
        )
        return await self._guarded_update(stmt, "assign_driver", order_id)

    async def try_advance_status(
        self,
        order_id: uuid.UUID,
        driver_id: uuid.UUID,
        from_status: OrderStatus,
        to_status: OrderStatus,
    ) -> bool:
        """
        Move the order from from_status to to_status for its assigned driver.

        The delivery timestamp comes from the database clock, the same one
        that stamps ``created_at``.

        Returns:
            True if the order was in from_status and assigned to driver_id
        """
        values: dict[str, Any] = {"status": to_status, "updated_at": func.now()}
        if to_status == OrderStatus.DELIVERED:
            values["delivered_at"] = func.now()

        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == from_status,
                Order.driver_id == driver_id,
            )
            .values(**values)
        )
        return await self._guarded_update(stmt, f"advance_to_{to_status.value}", order_id)

    async def try_cancel(
        self,
        order_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Cancel the order if it is still pending with no driver assigned.

        Args:
            order_id: Order identifier
            customer_id: When given, the order must belong to this customer
        """
        conditions = [
            Order.id == order_id,
            Order.status == OrderStatus.PENDING,
            Order.driver_id.is_(None),
        ]
        if customer_id is not None:
            conditions.append(Order.customer_id == customer_id)

        stmt = (
            update(Order)
            .where(*conditions)
            .values(status=OrderStatus.CANCELLED, updated_at=func.now())
        )
        return await self._guarded_update(stmt, "cancel", order_id)

    async def update_payment(
        self,
        order: Order,
        payment_status: PaymentStatus,
        transaction_id: Optional[str] = None,
    ) -> Order:
        """
        Record the customer payment outcome on the order.

        Raises:
            OrderUpdateError: If the update fails
        """
        try:
            order.payment_status = payment_status
            if transaction_id:
                order.payment_transaction_id = transaction_id
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update payment status",
                order_id=str(order.id),
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to update payment status",
                order_id=str(order.id),
                error=str(e),
            ) from e

        logger.info(
            "Order payment status updated",
            order_id=str(order.id),
            payment_status=payment_status.value,
            transaction_id=transaction_id,
        )
        return order

    async def get_order_by_payment_transaction(self, transaction_id: str) -> Optional[Order]:
        try:
            result = await self.session.execute(
                select(Order).where(Order.payment_transaction_id == transaction_id)
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to retrieve order by payment transaction",
                transaction_id=transaction_id,
                error=str(e),
            ) from e

    async def count_orders(
        self,
        status: Optional[OrderStatus] = None,
        delivered_since: Optional[datetime] = None,
    ) -> int:
        """Count orders, optionally filtered by status or delivery time."""
        stmt = select(func.count(Order.id))
        if status is not None:
            stmt = stmt.where(Order.status == status)
        if delivered_since is not None:
            stmt = stmt.where(Order.delivered_at >= delivered_since)
        try:
            result = await self.session.execute(stmt)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise OrderRepositoryError("Failed to count orders", error=str(e)) from e
