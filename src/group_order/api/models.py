"""Pydantic models for HTTP request bodies."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class LineItemIn(BaseModel):
    """One requested line item."""

    name: str = ""
    price: Decimal | None = None
    quantity: int | None = None


class CreateSessionRequest(BaseModel):
    """Payload for creating a session."""

    model_config = ConfigDict(populate_by_name=True)

    host_name: str | None = Field(default=None, alias="hostName")
    payment_info: str = Field(default="", alias="hostPaymentInfo")
    delivery_fee: Decimal = Field(default=Decimal(0), alias="deliveryFee")
    deadline: datetime | None = None
    restaurant_id: str | None = Field(default=None, alias="restaurantId")


class SubmitOrderRequest(BaseModel):
    """Payload for submitting one's own order."""

    model_config = ConfigDict(populate_by_name=True)

    participant_name: str | None = Field(default=None, alias="participantName")
    items: list[LineItemIn]


class EditOrderRequest(BaseModel):
    """Payload for a host editing another participant's order."""

    items: list[LineItemIn]


class PaymentRequest(BaseModel):
    """Payload for toggling a payment flag."""

    model_config = ConfigDict(populate_by_name=True)

    payment_sent: bool = Field(alias="paymentSent")


class DeliveryFeeRequest(BaseModel):
    """Payload for changing the delivery fee."""

    model_config = ConfigDict(populate_by_name=True)

    delivery_fee: Decimal = Field(alias="deliveryFee")


class PaymentInfoRequest(BaseModel):
    """Payload for changing the host payment destination."""

    model_config = ConfigDict(populate_by_name=True)

    payment_info: str = Field(alias="paymentInfo")


def items_payload(items: list[LineItemIn]) -> list[dict[str, object]]:
    """Convert request items into the mappings the service validates."""
    return [item.model_dump() for item in items]
