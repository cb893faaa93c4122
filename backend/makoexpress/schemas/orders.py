"""
Order Pydantic schemas for API request/response validation.

This module defines the schemas for placing delivery orders, driver status
updates, cancellation and the public tracking view.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from makoexpress.database.models.order import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Urgency,
)


class OrderCreateRequest(BaseModel):
    """Request schema for placing a delivery order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    pickup_address: str = Field(..., min_length=1, max_length=500, description="Pickup address")
    delivery_address: str = Field(
        ..., min_length=1, max_length=500, description="Delivery address"
    )
    package_type: str = Field(..., min_length=1, max_length=50, description="Package type")
    weight: str = Field(..., min_length=1, max_length=20, description="Package weight class")
    urgency: Urgency = Field(default=Urgency.STANDARD, description="Delivery urgency")
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Price in XOF")
    payment_method: Optional[PaymentMethod] = Field(None, description="Payment method")
    notes: Optional[str] = Field(None, max_length=1000, description="Order notes")
    customer_phone: Optional[str] = Field(None, max_length=20, description="Contact phone")
    delivery_instructions: Optional[str] = Field(
        None, max_length=1000, description="Instructions for the driver"
    )
    estimated_delivery_time: Optional[datetime] = Field(
        None, description="Estimated delivery time"
    )

    @field_validator("customer_phone")
    @classmethod
    def validate_phone_format(cls, v: Optional[str]) -> Optional[str]:
        """Keep a leading + and the digits."""
        if v is None:
            return v
        digits = "".join(filter(str.isdigit, v))
        if len(digits) < 8:
            raise ValueError("Phone number must contain at least 8 digits")
        return f"+{digits}" if v.startswith("+") else digits


class OrderStatusUpdateRequest(BaseModel):
    """Driver request to move an order to its next delivery status."""

    status: OrderStatus = Field(..., description="Target status")
    location: Optional[str] = Field(None, max_length=255, description="Current location")
    notes: Optional[str] = Field(None, max_length=1000, description="Status notes")


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Cancellation reason")


class OrderPaymentRequest(BaseModel):
    customer_phone: Optional[str] = Field(
        None, max_length=20, description="Mobile-money number to charge"
    )


class OrderResponse(BaseModel):
    """Order details response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tracking_number: str
    customer_id: UUID
    driver_id: Optional[UUID] = None
    pickup_address: str
    delivery_address: str
    package_type: str
    weight: str
    urgency: Urgency
    price: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_instructions: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total: int


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    timestamp: datetime


class TrackingResponse(BaseModel):
    """Public tracking view of an order."""

    order: OrderResponse
    history: list[StatusHistoryResponse]
    progress: int = Field(..., ge=0, le=100, description="Delivery progress percentage")
