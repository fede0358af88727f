import uuid

from fastapi import APIRouter, Depends, Response, status

from app.dependencies import get_completion_scheduler, get_ledger
from app.routers.errors import translate_scheduler_error
from app.schemas.bot import (
    BotCreateRequest,
    BotDeleteResponse,
    BotResponse,
    BotsListResponse,
    BotUpdateRequest,
    ClaimResponse,
)
from app.schemas.order import OrderResponse
from app.services.bots_service import create_bot, delete_bot, get_bot, list_bots, update_bot
from app.services.claim_service import ClaimStatus, claim_for_bot
from app.services.completion_service import CompletionScheduler
from app.services.errors import SchedulerError
from app.services.ledger import Ledger

router = APIRouter(prefix="/api/v1/bots", tags=["bots"])

_CLAIM_MESSAGES = {
    ClaimStatus.OK: None,
    ClaimStatus.NO_ORDER_AVAILABLE: "No pending order available",
    ClaimStatus.BOT_NOT_FOUND: "Bot not found",
    ClaimStatus.BOT_BUSY: "Bot is already processing an order",
    ClaimStatus.CONFLICT: "Another claimer won the race; retry",
}

_CLAIM_HTTP_STATUS = {
    ClaimStatus.OK: status.HTTP_200_OK,
    ClaimStatus.NO_ORDER_AVAILABLE: status.HTTP_200_OK,
    ClaimStatus.BOT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ClaimStatus.BOT_BUSY: status.HTTP_409_CONFLICT,
    ClaimStatus.CONFLICT: status.HTTP_409_CONFLICT,
}


@router.post("", response_model=BotResponse, summary="Create bot", status_code=201)
def create_bot_endpoint(
    payload: BotCreateRequest,
    ledger: Ledger = Depends(get_ledger),
) -> BotResponse:
    return BotResponse.model_validate(create_bot(ledger, payload.type))


@router.get("", response_model=BotsListResponse, summary="List bots")
def list_bots_endpoint(ledger: Ledger = Depends(get_ledger)) -> BotsListResponse:
    return BotsListResponse(items=[BotResponse.model_validate(bot) for bot in list_bots(ledger)])


@router.get("/{bot_id}", response_model=BotResponse, summary="Get bot")
def get_bot_endpoint(bot_id: uuid.UUID, ledger: Ledger = Depends(get_ledger)) -> BotResponse:
    try:
        return BotResponse.model_validate(get_bot(ledger, bot_id))
    except SchedulerError as err:
        raise translate_scheduler_error(err)


@router.patch("/{bot_id}", response_model=BotResponse, summary="Start, stop or reassign bot")
def update_bot_endpoint(
    bot_id: uuid.UUID,
    payload: BotUpdateRequest,
    ledger: Ledger = Depends(get_ledger),
    scheduler: CompletionScheduler = Depends(get_completion_scheduler),
) -> BotResponse:
    try:
        bot = update_bot(
            ledger,
            scheduler,
            bot_id,
            status=payload.status,
            current_order_id=payload.current_order_id,
            current_order_id_set="current_order_id" in payload.model_fields_set,
        )
    except SchedulerError as err:
        raise translate_scheduler_error(err)
    return BotResponse.model_validate(bot)


@router.delete("/{bot_id}", response_model=BotDeleteResponse, summary="Delete bot")
def delete_bot_endpoint(
    bot_id: uuid.UUID,
    ledger: Ledger = Depends(get_ledger),
) -> BotDeleteResponse:
    try:
        requeued = delete_bot(ledger, bot_id)
    except SchedulerError as err:
        raise translate_scheduler_error(err)
    return BotDeleteResponse(id=bot_id, orders_requeued=requeued)


@router.post("/{bot_id}/claim", response_model=ClaimResponse, summary="Claim next order")
def claim_endpoint(
    bot_id: uuid.UUID,
    response: Response,
    ledger: Ledger = Depends(get_ledger),
    scheduler: CompletionScheduler = Depends(get_completion_scheduler),
) -> ClaimResponse:
    try:
        result = claim_for_bot(ledger, scheduler, bot_id)
    except SchedulerError as err:
        raise translate_scheduler_error(err)

    response.status_code = _CLAIM_HTTP_STATUS[result.status]
    return ClaimResponse(
        status=result.status,
        order=OrderResponse.model_validate(result.order) if result.order else None,
        bot=BotResponse.model_validate(result.bot) if result.bot else None,
        message=_CLAIM_MESSAGES[result.status],
    )
