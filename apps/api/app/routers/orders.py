import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from app.auth.jwt import JwtError, verify_callback_signature
from app.config import callback_signing_keys, settings
from app.dependencies import get_completion_scheduler, get_ledger
from app.observability import log_event, metrics_store, observe_timing
from app.routers.errors import translate_scheduler_error
from app.schemas.order import (
    CompletionCallbackRequest,
    CompletionCallbackResponse,
    OrderCreateRequest,
    OrderResponse,
    OrdersClearResponse,
    OrdersListResponse,
    OrderUpdateRequest,
)
from app.services.completion_service import CompletionScheduler, complete_order
from app.services.errors import (
    BusyResourceError,
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    SchedulerError,
)
from app.services.ledger import Ledger
from app.services.orders_service import (
    OrderUpdateResult,
    UpdateStatus,
    clear_all_orders,
    create_order,
    delete_order,
    get_order,
    list_orders,
    update_order,
)

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


def _raise_for_update(result: OrderUpdateResult) -> None:
    if result.status == UpdateStatus.OK:
        return
    if result.status == UpdateStatus.NOT_FOUND:
        raise NotFoundError(result.message or "Order not found")
    if result.status == UpdateStatus.BOT_NOT_FOUND:
        raise NotFoundError("Bot not found")
    if result.status == UpdateStatus.BOT_BUSY:
        raise BusyResourceError("Bot is already processing an order")
    if result.status == UpdateStatus.CONFLICT:
        raise ConflictError(result.message or "Order changed concurrently")
    raise InvalidTransitionError(result.message or "Invalid order transition")


def _verify_callback(body: bytes, signature: str | None) -> None:
    signing_keys = tuple(key for key in callback_signing_keys() if key)
    if not signing_keys:
        if settings.testing:
            return
        raise ConfigurationError("QStash signing keys are not configured")
    if not signature:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing signature")
    try:
        verify_callback_signature(signature, body, signing_keys)
    except JwtError as err:
        metrics_store.increment("completion_callback_rejected_total")
        log_event("completion_callback_rejected", reason=str(err))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")


@router.post("", response_model=OrderResponse, summary="Create order", status_code=201)
def create_order_endpoint(
    payload: OrderCreateRequest,
    ledger: Ledger = Depends(get_ledger),
) -> OrderResponse:
    try:
        order = create_order(ledger, payload.type)
    except SchedulerError as err:
        raise translate_scheduler_error(err)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrdersListResponse, summary="List orders")
def list_orders_endpoint(
    ledger: Ledger = Depends(get_ledger),
    scheduler: CompletionScheduler = Depends(get_completion_scheduler),
) -> OrdersListResponse:
    with observe_timing("list_orders_seconds"):
        orders = list_orders(ledger, scheduler)
    return OrdersListResponse(items=[OrderResponse.model_validate(order) for order in orders])


@router.delete("", response_model=OrdersClearResponse, summary="Clear all orders")
def clear_orders_endpoint(ledger: Ledger = Depends(get_ledger)) -> OrdersClearResponse:
    result = clear_all_orders(ledger)
    return OrdersClearResponse(orders_cleared=result.orders_cleared, bots_reset=result.bots_reset)


@router.post(
    "/complete",
    response_model=CompletionCallbackResponse,
    summary="Completion callback from the push dispatcher",
)
async def completion_callback_endpoint(
    request: Request,
    ledger: Ledger = Depends(get_ledger),
    upstash_signature: str | None = Header(default=None, alias="Upstash-Signature"),
) -> CompletionCallbackResponse:
    body = await request.body()
    try:
        _verify_callback(body, upstash_signature)
    except SchedulerError as err:
        raise translate_scheduler_error(err)

    try:
        payload = CompletionCallbackRequest.model_validate_json(body)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid completion payload"
        )

    completed = await run_in_threadpool(complete_order, ledger, payload.order_id, payload.bot_id)
    metrics_store.increment("completion_callbacks_total")
    return CompletionCallbackResponse(completed=completed, order_id=payload.order_id)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
def get_order_endpoint(order_id: uuid.UUID, ledger: Ledger = Depends(get_ledger)) -> OrderResponse:
    try:
        order = get_order(ledger, order_id)
    except SchedulerError as err:
        raise translate_scheduler_error(err)
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}", response_model=OrderResponse, summary="Update order")
def update_order_endpoint(
    order_id: uuid.UUID,
    payload: OrderUpdateRequest,
    ledger: Ledger = Depends(get_ledger),
    scheduler: CompletionScheduler = Depends(get_completion_scheduler),
) -> OrderResponse:
    try:
        result = update_order(
            ledger,
            scheduler,
            order_id,
            status=payload.status,
            bot_id=payload.bot_id,
            bot_id_set="bot_id" in payload.model_fields_set,
        )
        _raise_for_update(result)
    except SchedulerError as err:
        raise translate_scheduler_error(err)
    return OrderResponse.model_validate(result.order)


@router.delete("/{order_id}", status_code=204, summary="Delete order")
def delete_order_endpoint(order_id: uuid.UUID, ledger: Ledger = Depends(get_ledger)) -> None:
    try:
        delete_order(ledger, order_id)
    except SchedulerError as err:
        raise translate_scheduler_error(err)
