import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.enums import OrderStatus, OrderType


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrderCreateRequest(BaseModel):
    type: OrderType = OrderType.NORMAL


class OrderUpdateRequest(BaseModel):
    """Fields left out of the body are left alone; an explicit null bot_id clears it."""

    status: OrderStatus | None = None
    bot_id: uuid.UUID | None = None


class OrderResponse(ResponseModel):
    id: uuid.UUID
    order_number: int
    type: OrderType
    status: OrderStatus
    bot_id: uuid.UUID | None
    processing_started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrdersListResponse(ResponseModel):
    items: list[OrderResponse]


class OrdersClearResponse(ResponseModel):
    orders_cleared: int
    bots_reset: int


class CompletionCallbackRequest(BaseModel):
    order_id: uuid.UUID
    bot_id: uuid.UUID


class CompletionCallbackResponse(ResponseModel):
    completed: bool
    order_id: uuid.UUID

