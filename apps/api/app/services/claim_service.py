"""Claim Engine: hand one pending order to one idle bot, atomically."""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models.bot import Bot
from app.models.enums import BotStatus
from app.models.ids import utc_now
from app.models.order import Order
from app.observability import log_event, metrics_store
from app.services.completion_service import CompletionScheduler
from app.services.errors import ConflictError, StorageError
from app.services.ledger import Ledger


class ClaimStatus(str, enum.Enum):
    OK = "OK"
    NO_ORDER_AVAILABLE = "NO_ORDER_AVAILABLE"
    BOT_NOT_FOUND = "BOT_NOT_FOUND"
    BOT_BUSY = "BOT_BUSY"
    CONFLICT = "CONFLICT"


@dataclass
class ClaimResult:
    status: ClaimStatus
    order: Order | None = None
    bot: Bot | None = None

    @property
    def ok(self) -> bool:
        return self.status == ClaimStatus.OK


def assign_order(
    ledger: Ledger,
    order_id: uuid.UUID,
    bot_id: uuid.UUID,
    now: datetime,
) -> tuple[Order, Bot]:
    """Move an order and a bot to PROCESSING together.

    Must run inside ``ledger.transaction()``. Raises ``ConflictError`` when
    either conditioned update loses a race, which rolls the pair back.
    """
    if not ledger.start_order(order_id, bot_id, now):
        raise ConflictError("Order is no longer pending")
    if not ledger.engage_bot(bot_id, order_id, now):
        raise ConflictError("Bot is no longer idle")
    ledger.db.flush()

    order = ledger.get_order(order_id)
    bot = ledger.get_bot(bot_id)
    if order is None or bot is None:
        raise ConflictError("Assignment target disappeared")
    return order, bot


def claim_for_bot(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    bot_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> ClaimResult:
    now = now or utc_now()
    metrics_store.increment("claims_total")

    try:
        with ledger.transaction():
            bot = ledger.get_bot(bot_id)
            if bot is None:
                return ClaimResult(status=ClaimStatus.BOT_NOT_FOUND)
            if bot.status != BotStatus.IDLE:
                return ClaimResult(status=ClaimStatus.BOT_BUSY, bot=bot)

            candidate = ledger.next_pending_order()
            if candidate is None:
                metrics_store.increment("claims_empty_total")
                return ClaimResult(status=ClaimStatus.NO_ORDER_AVAILABLE, bot=bot)

            order, bot = assign_order(ledger, candidate.id, bot.id, now)
    except (ConflictError, IntegrityError) as err:
        # Another claimer won; the transaction was rolled back as a whole.
        metrics_store.increment("claims_conflict_total")
        log_event("claim_conflict", bot_id=bot_id, reason=str(err))
        return ClaimResult(status=ClaimStatus.CONFLICT)
    except SQLAlchemyError as err:
        log_event("claim_storage_error", bot_id=bot_id, level=logging.ERROR, exc_info=True)
        raise StorageError("Claim failed unexpectedly") from err

    metrics_store.increment("claims_succeeded_total")
    log_event("order_claimed", order_id=order.id, bot_id=bot.id, order_type=order.type.value)
    scheduler.schedule(order, bot.bot_type, now=now)
    return ClaimResult(status=ClaimStatus.OK, order=order, bot=bot)


def assign_to_bot(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    order_id: uuid.UUID,
    bot_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> ClaimResult:
    """Assign a specific pending order to a specific idle bot.

    Same guarantees as ``claim_for_bot``; used by manual assignment.
    """
    now = now or utc_now()
    try:
        with ledger.transaction():
            bot = ledger.get_bot(bot_id)
            if bot is None:
                return ClaimResult(status=ClaimStatus.BOT_NOT_FOUND)
            if bot.status != BotStatus.IDLE:
                return ClaimResult(status=ClaimStatus.BOT_BUSY, bot=bot)
            order, bot = assign_order(ledger, order_id, bot.id, now)
    except (ConflictError, IntegrityError) as err:
        metrics_store.increment("assignments_conflict_total")
        log_event("assignment_conflict", order_id=order_id, bot_id=bot_id, reason=str(err))
        return ClaimResult(status=ClaimStatus.CONFLICT)
    except SQLAlchemyError as err:
        log_event(
            "assignment_storage_error",
            order_id=order_id,
            bot_id=bot_id,
            level=logging.ERROR,
            exc_info=True,
        )
        raise StorageError("Assignment failed unexpectedly") from err

    log_event("order_assigned", order_id=order.id, bot_id=bot.id)
    scheduler.schedule(order, bot.bot_type, now=now)
    return ClaimResult(status=ClaimStatus.OK, order=order, bot=bot)
