"""
Settlement data access repository.

Settlement rows are written once per delivered order. The commission
breakdown is never updated after insert; only the payout tracking columns
are changed through record_payout.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import Order
from makoexpress.database.models.settlement import PayoutStatus, Settlement, payout_reference
from makoexpress.services.commission.calculator import CommissionCalculation

logger = get_logger(__name__)


class SettlementRepositoryError(Exception):
    """Base exception for settlement repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class SettlementExistsError(SettlementRepositoryError):
    """Raised when an order has already been settled."""

    pass


class SettlementRepository:
    """Repository for settlement records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_settlement(
        self,
        order: Order,
        driver_id: uuid.UUID,
        calculation: CommissionCalculation,
    ) -> Settlement:
        """
        Persist the commission split applied to a delivered order.

        Raises:
            SettlementExistsError: If the order already has a settlement
            SettlementRepositoryError: If the insert fails
        """
        settlement = Settlement(
            order_id=order.id,
            driver_id=driver_id,
            base_amount=calculation.base_amount,
            commission_rate=calculation.commission_rate,
            commission_amount=calculation.commission_amount,
            driver_earnings=calculation.driver_earnings,
            admin_earnings=calculation.admin_earnings,
            tier=calculation.tier,
            payout_status=PayoutStatus.PENDING,
            payout_reference=payout_reference(driver_id, order.id),
            payout_attempts=0,
        )
        try:
            self.session.add(settlement)
            await self.session.flush()
        except IntegrityError as e:
            logger.error("Order already settled", order_id=str(order.id))
            raise SettlementExistsError(
                "Order already settled",
                order_id=str(order.id),
            ) from e
        except SQLAlchemyError as e:
            logger.error("Settlement creation failed", order_id=str(order.id), error=str(e))
            raise SettlementRepositoryError(
                "Settlement creation failed due to database error",
                order_id=str(order.id),
                error=str(e),
            ) from e

        logger.info(
            "Settlement recorded",
            order_id=str(order.id),
            driver_id=str(driver_id),
            tier=calculation.tier.value,
            commission_amount=str(calculation.commission_amount),
            driver_earnings=str(calculation.driver_earnings),
        )
        return settlement

    async def get_by_order_id(self, order_id: uuid.UUID) -> Optional[Settlement]:
        try:
            result = await self.session.execute(
                select(Settlement).where(Settlement.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise SettlementRepositoryError(
                "Failed to retrieve settlement",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_by_payout_transaction(self, transaction_id: str) -> Optional[Settlement]:
        try:
            result = await self.session.execute(
                select(Settlement).where(Settlement.payout_transaction_id == transaction_id)
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise SettlementRepositoryError(
                "Failed to retrieve settlement by transaction",
                transaction_id=transaction_id,
                error=str(e),
            ) from e

    async def list_by_status(self, payout_status: PayoutStatus, limit: int = 100) -> Sequence[Settlement]:
        try:
            result = await self.session.execute(
                select(Settlement)
                .where(Settlement.payout_status == payout_status)
                .order_by(Settlement.created_at.asc(), Settlement.id)
                .limit(limit)
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise SettlementRepositoryError("Failed to list settlements", error=str(e)) from e

    async def record_attempt(self, settlement: Settlement) -> Settlement:
        settlement.payout_attempts = (settlement.payout_attempts or 0) + 1
        return await self._flush(settlement)

    async def record_payout(
        self,
        settlement: Settlement,
        payout_status: PayoutStatus,
        transaction_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Settlement:
        """Update payout tracking after a gateway response."""
        settlement.payout_status = payout_status
        if transaction_id:
            settlement.payout_transaction_id = transaction_id
        settlement.payout_message = message
        if payout_status == PayoutStatus.COMPLETED and settlement.paid_out_at is None:
            settlement.paid_out_at = datetime.now(timezone.utc)
        return await self._flush(settlement)

    async def _flush(self, settlement: Settlement) -> Settlement:
        try:
            await self.session.flush()
            return settlement
        except SQLAlchemyError as e:
            logger.error(
                "Settlement update failed",
                order_id=str(settlement.order_id),
                error=str(e),
            )
            raise SettlementRepositoryError(
                "Settlement update failed",
                order_id=str(settlement.order_id),
                error=str(e),
            ) from e

    async def sum_driver_earnings(
        self,
        driver_id: uuid.UUID,
        since: Optional[datetime] = None,
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Settlement.driver_earnings), 0)).where(
            Settlement.driver_id == driver_id
        )
        if since is not None:
            stmt = stmt.where(Settlement.created_at >= since)
        return await self._sum(stmt, driver_id=str(driver_id))

    async def sum_platform_commission(self) -> Decimal:
        stmt = select(func.coalesce(func.sum(Settlement.admin_earnings), 0))
        return await self._sum(stmt)

    async def _sum(self, stmt, **context: Any) -> Decimal:
        try:
            result = await self.session.execute(stmt)
            value = result.scalar_one()
        except SQLAlchemyError as e:
            raise SettlementRepositoryError("Failed to sum settlements", error=str(e), **context) from e
        return Decimal(str(value)).quantize(Decimal("0.01"))
