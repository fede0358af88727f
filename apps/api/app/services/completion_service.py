"""Finalizing PROCESSING orders.

Two paths race to finish an order: the delayed push callback and the pull
sweep in ``recovery_service``. Both go through ``finalize_order``, whose
conditioned updates make the loser a no-op.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime

from app.config import processing_delay_s, push_scheduling_enabled, settings
from app.integrations.errors import IntegrationError
from app.integrations.qstash_client import CompletionDispatcherProtocol, get_qstash_client
from app.models.enums import BotType
from app.models.ids import as_utc, utc_now
from app.models.order import Order
from app.observability import log_event, metrics_store
from app.services.ledger import Ledger

COMPLETION_CALLBACK_PATH = "/api/v1/orders/complete"


def processing_started(order: Order) -> datetime:
    # Rows written before processing_started_at existed fall back to older stamps.
    return as_utc(order.processing_started_at or order.updated_at or order.created_at)


def elapsed_processing_s(order: Order, now: datetime) -> float:
    return (as_utc(now) - processing_started(order)).total_seconds()


def deduplication_id(order_id: uuid.UUID, started_at: datetime) -> str:
    started_ms = int(as_utc(started_at).timestamp() * 1000)
    return f"{order_id}-{started_ms}"


@dataclass
class CompletionScheduler:
    """Arranges push completion callbacks when a dispatcher is configured."""

    dispatcher: CompletionDispatcherProtocol | None = None
    callback_url: str | None = None

    @property
    def push_enabled(self) -> bool:
        return self.dispatcher is not None and bool(self.callback_url)

    def schedule(
        self,
        order: Order,
        bot_type: BotType,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Schedule ``order`` for completion after the rest of its bot delay.

        Returns True when a callback was published. Publishing failures are
        logged and swallowed: the order is already PROCESSING and the recovery
        sweep will finalize it.
        """
        if not self.push_enabled or order.bot_id is None:
            return False

        started_at = processing_started(order)
        elapsed_s = elapsed_processing_s(order, now or utc_now())
        remaining_s = max(1, math.ceil(processing_delay_s(bot_type) - elapsed_s))

        try:
            self.dispatcher.publish_json(
                self.callback_url,
                {"order_id": str(order.id), "bot_id": str(order.bot_id)},
                delay_s=remaining_s,
                deduplication_id=deduplication_id(order.id, started_at),
            )
        except IntegrationError as err:
            metrics_store.increment("completion_schedule_failed_total")
            log_event(
                "completion_schedule_failed",
                order_id=order.id,
                bot_id=order.bot_id,
                level=logging.WARNING,
                error=str(err),
            )
            return False

        metrics_store.increment("completion_scheduled_total")
        log_event(
            "completion_scheduled",
            order_id=order.id,
            bot_id=order.bot_id,
            delay_s=remaining_s,
        )
        return True


def callback_url() -> str | None:
    base_url = settings.app_base_url.strip()
    if not base_url:
        return None
    return f"{base_url.rstrip('/')}{COMPLETION_CALLBACK_PATH}"


def get_completion_scheduler() -> CompletionScheduler:
    if not push_scheduling_enabled():
        return CompletionScheduler()
    return CompletionScheduler(dispatcher=get_qstash_client(), callback_url=callback_url())


def finalize_order(
    ledger: Ledger,
    order_id: uuid.UUID,
    bot_id: uuid.UUID,
    *,
    now: datetime | None = None,
    path: str,
) -> bool:
    """Mark ``order_id`` COMPLETE and free ``bot_id`` in one transaction.

    Only applies while the order is still PROCESSING and owned by
    ``bot_id``; otherwise nothing changes and False is returned.
    """
    now = now or utc_now()
    with ledger.transaction():
        if not ledger.complete_order(order_id, bot_id, now):
            return False
        bot_released = ledger.release_bot(bot_id, now, order_id=order_id)

    metrics_store.increment("orders_completed_total")
    metrics_store.increment(f"orders_completed_{path}_total")
    log_event("order_completed", order_id=order_id, bot_id=bot_id, path=path)
    if not bot_released:
        log_event(
            "order_completed_bot_not_released",
            order_id=order_id,
            bot_id=bot_id,
            level=logging.WARNING,
        )
    return True


def complete_order(
    ledger: Ledger,
    order_id: uuid.UUID,
    bot_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> bool:
    """Handle a completion callback; a stale or duplicate callback is a no-op."""
    now = now or utc_now()
    order = ledger.get_order(order_id)
    if order is None or order.bot_id != bot_id:
        log_event("completion_callback_stale", order_id=order_id, bot_id=bot_id)
        return False

    bot = ledger.get_bot(bot_id)
    if bot is not None and elapsed_processing_s(order, now) < processing_delay_s(bot.bot_type):
        # Too early; a later callback or the recovery sweep will finish it.
        log_event("completion_callback_early", order_id=order_id, bot_id=bot_id)
        return False

    completed = finalize_order(ledger, order_id, bot_id, now=now, path="callback")
    if not completed:
        log_event("completion_callback_stale", order_id=order_id, bot_id=bot_id)
    return completed
