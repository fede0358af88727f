from app.schemas.bot import (
    BotCreateRequest,
    BotDeleteResponse,
    BotResponse,
    BotsListResponse,
    BotUpdateRequest,
    ClaimResponse,
)
from app.schemas.order import (
    CompletionCallbackRequest,
    CompletionCallbackResponse,
    OrderCreateRequest,
    OrderResponse,
    OrdersClearResponse,
    OrdersListResponse,
    OrderUpdateRequest,
)

__all__ = [
    "BotCreateRequest",
    "BotDeleteResponse",
    "BotResponse",
    "BotsListResponse",
    "BotUpdateRequest",
    "ClaimResponse",
    "CompletionCallbackRequest",
    "CompletionCallbackResponse",
    "OrderCreateRequest",
    "OrderResponse",
    "OrdersClearResponse",
    "OrdersListResponse",
    "OrderUpdateRequest",
]
