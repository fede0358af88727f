import uuid
from datetime import datetime

from pydantic import BaseModel

from app.models.enums import BotStatus, BotType
from app.schemas.order import OrderResponse, ResponseModel
from app.services.claim_service import ClaimStatus


class BotCreateRequest(BaseModel):
    type: BotType = BotType.NORMAL


class BotUpdateRequest(BaseModel):
    status: BotStatus | None = None
    current_order_id: uuid.UUID | None = None


class BotResponse(ResponseModel):
    id: uuid.UUID
    bot_type: BotType
    status: BotStatus
    current_order_id: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


class BotsListResponse(ResponseModel):
    items: list[BotResponse]


class BotDeleteResponse(ResponseModel):
    id: uuid.UUID
    orders_requeued: int


class ClaimResponse(ResponseModel):
    status: ClaimStatus
    order: OrderResponse | None = None
    bot: BotResponse | None = None
    message: str | None = None
