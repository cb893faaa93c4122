"""
Driver profile data access.
"""

import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.driver import Driver, DriverStatus
from makoexpress.database.models.rating import DriverRating

logger = get_logger(__name__)


class DriverRepositoryError(Exception):
    """Base exception for driver repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class DriverProfileExistsError(DriverRepositoryError):
    """Raised when a user already owns a driver profile."""

    pass


class DuplicateRatingError(DriverRepositoryError):
    """Raised when an order already carries a rating."""

    pass


class DriverRepository:
    """Repository for driver profiles and the ratings that feed them."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_driver(self, user_id: uuid.UUID, **fields: Any) -> Driver:
        """
        Insert a driver profile for a user.

        Raises:
            DriverProfileExistsError: If the user already has a profile
            DriverRepositoryError: If the insert fails
        """
        try:
            driver = Driver(user_id=user_id, status=DriverStatus.PENDING, **fields)
            self.session.add(driver)
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("Driver profile already exists", user_id=str(user_id))
            raise DriverProfileExistsError(
                "Driver profile already exists for this user",
                user_id=str(user_id),
            ) from e
        except SQLAlchemyError as e:
            logger.error("Driver creation failed", user_id=str(user_id), error=str(e))
            raise DriverRepositoryError(
                "Driver creation failed due to database error",
                user_id=str(user_id),
                error=str(e),
            ) from e

        logger.info("Driver profile created", driver_id=str(driver.id), user_id=str(user_id))
        return driver

    async def get_driver_by_id(self, driver_id: uuid.UUID) -> Optional[Driver]:
        try:
            return await self.session.get(Driver, driver_id)
        except SQLAlchemyError as e:
            raise DriverRepositoryError(
                "Failed to retrieve driver",
                driver_id=str(driver_id),
                error=str(e),
            ) from e

    async def get_driver_by_user_id(self, user_id: uuid.UUID) -> Optional[Driver]:
        try:
            result = await self.session.execute(select(Driver).where(Driver.user_id == user_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DriverRepositoryError(
                "Failed to retrieve driver by user",
                user_id=str(user_id),
                error=str(e),
            ) from e

    async def list_drivers(
        self,
        status: Optional[DriverStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[Driver]:
        stmt = select(Driver).order_by(Driver.created_at.desc(), Driver.id)
        if status is not None:
            stmt = stmt.where(Driver.status == status)
        try:
            result = await self.session.execute(stmt.limit(limit).offset(offset))
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise DriverRepositoryError("Failed to list drivers", error=str(e)) from e

    async def save(self, driver: Driver) -> Driver:
        """
        Flush pending changes on a driver.

        Raises:
            DriverRepositoryError: If the update fails
        """
        try:
            await self.session.flush()
            return driver
        except SQLAlchemyError as e:
            logger.error("Driver update failed", driver_id=str(driver.id), error=str(e))
            raise DriverRepositoryError(
                "Driver update failed",
                driver_id=str(driver.id),
                error=str(e),
            ) from e

    async def increment_total_deliveries(self, driver_id: uuid.UUID) -> None:
        """Add one completed delivery, computed in the database."""
        try:
            await self.session.execute(
                update(Driver)
                .where(Driver.id == driver_id)
                .values(total_deliveries=Driver.total_deliveries + 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to increment deliveries", driver_id=str(driver_id), error=str(e))
            raise DriverRepositoryError(
                "Failed to increment deliveries",
                driver_id=str(driver_id),
                error=str(e),
            ) from e

    async def count_active_drivers(self) -> int:
        """Approved drivers currently online."""
        try:
            result = await self.session.execute(
                select(func.count(Driver.id)).where(
                    Driver.status == DriverStatus.APPROVED,
                    Driver.is_online.is_(True),
                )
            )
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise DriverRepositoryError("Failed to count active drivers", error=str(e)) from e

    async def get_rating_for_order(self, order_id: uuid.UUID) -> Optional[DriverRating]:
        try:
            result = await self.session.execute(
                select(DriverRating).where(DriverRating.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DriverRepositoryError(
                "Failed to retrieve rating",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def add_rating(self, rating: DriverRating) -> DriverRating:
        try:
            self.session.add(rating)
            await self.session.flush()
            return rating
        except IntegrityError as e:
            raise DuplicateRatingError(
                "Order already rated",
                order_id=str(rating.order_id),
            ) from e
        except SQLAlchemyError as e:
            raise DriverRepositoryError(
                "Failed to store rating",
                order_id=str(rating.order_id),
                error=str(e),
            ) from e

    async def average_rating(self, driver_id: uuid.UUID) -> Decimal:
        """Average of all ratings for a driver, rounded to 2 decimals."""
        try:
            result = await self.session.execute(
                select(func.avg(DriverRating.rating)).where(DriverRating.driver_id == driver_id)
            )
            average = result.scalar_one()
        except SQLAlchemyError as e:
            raise DriverRepositoryError(
                "Failed to compute average rating",
                driver_id=str(driver_id),
                error=str(e),
            ) from e

        if average is None:
            return Decimal("0.00")
        return Decimal(str(average)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
