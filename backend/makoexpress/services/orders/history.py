"""Append-only order status ledger.

Rows are only ever inserted. Entries for an order are read back oldest first,
by server timestamp with the insertion key breaking ties between entries
written within the same clock tick.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from makoexpress.core.logging import get_logger
from makoexpress.database.models.order import OrderStatus, OrderStatusHistory
from makoexpress.services.orders.repository import OrderRepositoryError

logger = get_logger(__name__)


class StatusHistoryLedger:
    """Status history trail consumed by order tracking."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> OrderStatusHistory:
        """
        Append one entry for a status the order has entered.

        Raises:
            OrderRepositoryError: If the insert fails
        """
        entry = OrderStatusHistory(
            order_id=order_id,
            status=status,
            location=location,
            notes=notes,
        )
        try:
            self.session.add(entry)
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append status history",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            )
            raise OrderRepositoryError(
                "Failed to append status history",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            ) from e

        logger.debug("Status history appended", order_id=str(order_id), status=status.value)
        return entry

    async def list_for(self, order_id: uuid.UUID) -> Sequence[OrderStatusHistory]:
        """Entries for an order, oldest first."""
        try:
            result = await self.session.execute(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.timestamp.asc(), OrderStatusHistory.id.asc())
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list status history", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to list status history",
                order_id=str(order_id),
                error=str(e),
            ) from e
