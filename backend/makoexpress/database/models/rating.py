"""
Driver rating model.
"""

import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from makoexpress.database.base import BaseModel, create_table_args


class DriverRating(BaseModel):
    """
    Customer rating of a driver for one delivered order.

    Attributes:
        order_id: Rated order
        customer_id: Customer who placed the order
        driver_id: Driver who delivered it
        rating: Integer score from 1 to 5
        comment: Optional free-text comment
    """

    __tablename__ = "driver_ratings"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    driver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("drivers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = create_table_args(
        UniqueConstraint("order_id", name="uq_driver_ratings_order"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_driver_ratings_range"),
        comment="Customer ratings of drivers",
    )
