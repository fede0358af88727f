from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.models.bot import Bot
from app.models.enums import BotStatus, BotType
from app.models.ids import utc_now
from app.observability import log_event, metrics_store
from app.services.claim_service import assign_order
from app.services.completion_service import CompletionScheduler
from app.services.errors import ConflictError, InvalidTransitionError, NotFoundError
from app.services.ledger import Ledger


def create_bot(
    ledger: Ledger,
    bot_type: BotType = BotType.NORMAL,
    *,
    now: datetime | None = None,
) -> Bot:
    with ledger.transaction():
        bot = ledger.add_bot(bot_type, now or utc_now())

    metrics_store.increment("bots_created_total")
    log_event("bot_created", bot_id=bot.id, bot_type=bot.bot_type.value)
    return bot


def list_bots(ledger: Ledger) -> list[Bot]:
    return ledger.list_bots()


def get_bot(ledger: Ledger, bot_id: uuid.UUID) -> Bot:
    bot = ledger.get_bot(bot_id)
    if bot is None:
        raise NotFoundError("Bot not found")
    return bot


def _reassign(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    bot: Bot,
    order_id: uuid.UUID,
    now: datetime,
) -> Bot:
    previous_order_id = bot.current_order_id
    try:
        with ledger.transaction():
            if previous_order_id is not None:
                ledger.requeue_order(previous_order_id, now, bot_id=bot.id)
                ledger.release_bot(bot.id, now, order_id=previous_order_id)
            order, bot = assign_order(ledger, order_id, bot.id, now)
    except IntegrityError as err:
        raise ConflictError("Order or bot assignment conflict") from err

    log_event("bot_reassigned", order_id=order.id, bot_id=bot.id, previous=previous_order_id)
    scheduler.schedule(order, bot.bot_type, now=now)
    return bot


def update_bot(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    bot_id: uuid.UUID,
    *,
    status: BotStatus | None = None,
    current_order_id: uuid.UUID | None = None,
    current_order_id_set: bool = False,
    now: datetime | None = None,
) -> Bot:
    """Start, stop or reassign a bot.

    Stopping a working bot (IDLE, or its current order cleared) puts that
    order back in the queue. Asking for PROCESSING with a different order
    reassigns the bot: the old order is requeued and the new one claimed in
    the same transaction.
    """
    now = now or utc_now()
    bot = get_bot(ledger, bot_id)
    previous_order_id = bot.current_order_id

    if (
        status == BotStatus.PROCESSING
        and current_order_id is not None
        and current_order_id != previous_order_id
    ):
        return _reassign(ledger, scheduler, bot, current_order_id, now)

    stopping = status == BotStatus.IDLE or (current_order_id_set and current_order_id is None)
    if stopping and previous_order_id is not None:
        with ledger.transaction():
            ledger.requeue_order(previous_order_id, now, bot_id=bot.id)
            if not ledger.release_bot(bot.id, now, order_id=previous_order_id):
                raise ConflictError("Bot moved on before it could be stopped")
        log_event("bot_stopped", order_id=previous_order_id, bot_id=bot.id)
        return get_bot(ledger, bot.id)

    if stopping and bot.status == BotStatus.PROCESSING:
        with ledger.transaction():
            ledger.release_bot(bot.id, now)
        return get_bot(ledger, bot.id)

    if status == BotStatus.PROCESSING and previous_order_id is None:
        raise InvalidTransitionError("current_order_id is required to start a bot")
    if current_order_id_set and current_order_id != previous_order_id:
        raise InvalidTransitionError("status PROCESSING is required to assign an order")
    return bot


def delete_bot(ledger: Ledger, bot_id: uuid.UUID, *, now: datetime | None = None) -> int:
    """Soft-delete a bot; the order it was processing goes back to PENDING.

    Returns how many orders were requeued (0 or 1).
    """
    now = now or utc_now()
    with ledger.transaction():
        bot = ledger.get_bot(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        requeued = ledger.requeue_orders_of_bot(bot.id, now)
        if not ledger.soft_delete_bot(bot.id, now):
            raise NotFoundError("Bot not found")

    metrics_store.increment("bots_deleted_total")
    log_event("bot_deleted", bot_id=bot_id, order_id=bot.current_order_id, requeued=requeued)
    return requeued
