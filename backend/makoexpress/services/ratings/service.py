"""
Driver ratings.
"""

import uuid
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import OrderStatus
from makoexpress.database.models.rating import DriverRating
from makoexpress.services.drivers.repository import DriverRepository, DuplicateRatingError
from makoexpress.services.orders.repository import OrderNotFoundError, OrderRepository

logger = get_logger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class RatingError(Exception):
    """Base exception for rating errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class RatingValidationError(RatingError):
    pass


class RatingPermissionError(RatingError):
    """Raised when someone other than the ordering customer rates."""

    pass


class RatingConflictError(RatingError):
    """Raised when the order has already been rated."""

    pass


class RatingService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.orders = OrderRepository(session)
        self.drivers = DriverRepository(session)

    async def rate_driver(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        rating: int,
        comment: Optional[str] = None,
    ) -> DriverRating:
        """
        Rate the driver of a delivered order and refresh the driver's average.

        Raises:
            OrderNotFoundError: If the order does not exist
            RatingValidationError: If the score or order status is wrong
            RatingPermissionError: If the caller did not place the order
            RatingConflictError: If the order was already rated
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise RatingValidationError(
                f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}",
                rating=rating,
            )

        order = await self.orders.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        if order.customer_id != customer_id:
            raise RatingPermissionError(
                "Only the customer who placed the order can rate it",
                order_id=str(order_id),
            )
        if order.status != OrderStatus.DELIVERED or order.driver_id is None:
            raise RatingValidationError(
                "Only delivered orders can be rated",
                order_id=str(order_id),
                status=order.status.value,
            )
        if await self.drivers.get_rating_for_order(order_id) is not None:
            raise RatingConflictError("Order already rated", order_id=str(order_id))

        try:
            entry = await self.drivers.add_rating(
                DriverRating(
                    order_id=order_id,
                    customer_id=customer_id,
                    driver_id=order.driver_id,
                    rating=rating,
                    comment=comment,
                )
            )
        except DuplicateRatingError as e:
            raise RatingConflictError("Order already rated", order_id=str(order_id)) from e

        driver = await self.drivers.get_driver_by_id(order.driver_id)
        driver.rating = await self.drivers.average_rating(order.driver_id)
        await self.drivers.save(driver)
        await self.session.commit()

        logger.info(
            "Driver rated",
            order_id=str(order_id),
            driver_id=str(order.driver_id),
            rating=rating,
            average=str(driver.rating),
        )
        return entry
