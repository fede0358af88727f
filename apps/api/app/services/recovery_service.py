"""Recovery sweep: finish overdue orders and repair inconsistent bots.

Runs before orders are listed and once at startup. Safe to run any number of
times, concurrently: every write is a conditioned update, so two sweeps
racing over the same order finalize it once and free its bot once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app.config import processing_delay_s
from app.models.enums import OrderStatus
from app.models.ids import utc_now
from app.models.order import Order
from app.observability import log_event, metrics_store, observe_timing
from app.services.completion_service import (
    CompletionScheduler,
    elapsed_processing_s,
    finalize_order,
)
from app.services.ledger import Ledger


@dataclass
class SweepReport:
    repaired_bots: int = 0
    completed_orders: list[str] = field(default_factory=list)
    requeued_orders: list[str] = field(default_factory=list)
    rescheduled_orders: list[str] = field(default_factory=list)
    failed_orders: list[str] = field(default_factory=list)


def repair_stuck_bots(ledger: Ledger, now: datetime) -> int:
    """Return PROCESSING bots that have no live order of their own to IDLE."""
    with ledger.transaction():
        repaired = ledger.release_orphaned_bots(now)

    for bot in ledger.working_bots():
        if bot.current_order_id is None:
            continue
        order = ledger.get_order(bot.current_order_id)
        owns_order = order is not None and order.bot_id == bot.id
        if owns_order and order.status == OrderStatus.PROCESSING:
            continue
        with ledger.transaction():
            if ledger.release_bot(bot.id, now, order_id=bot.current_order_id):
                repaired += 1
                log_event("stuck_bot_released", bot_id=bot.id, order_id=bot.current_order_id)
    return repaired


def _requeue_ownerless(ledger: Ledger, order: Order, now: datetime) -> bool:
    with ledger.transaction():
        requeued = ledger.requeue_order(order.id, now, bot_id=order.bot_id)
    if requeued:
        log_event("ownerless_order_requeued", order_id=order.id, bot_id=order.bot_id)
    return requeued


def run_recovery_sweep(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    *,
    now: datetime | None = None,
) -> SweepReport:
    now = now or utc_now()
    report = SweepReport()

    with observe_timing("recovery_sweep_seconds"):
        report.repaired_bots = repair_stuck_bots(ledger, now)

        orders = ledger.processing_orders()
        bot_types = ledger.bot_types({order.bot_id for order in orders if order.bot_id})

        for order in orders:
            order_id = str(order.id)
            bot_type = bot_types.get(order.bot_id) if order.bot_id else None
            try:
                if bot_type is None:
                    # No live bot owns it any more: put it back in the queue.
                    if _requeue_ownerless(ledger, order, now):
                        report.requeued_orders.append(order_id)
                    continue

                if elapsed_processing_s(order, now) >= processing_delay_s(bot_type):
                    if finalize_order(ledger, order.id, order.bot_id, now=now, path="sweep"):
                        report.completed_orders.append(order_id)
                    continue

                if scheduler.schedule(order, bot_type, now=now):
                    report.rescheduled_orders.append(order_id)
            except SQLAlchemyError:
                metrics_store.increment("recovery_sweep_order_failed_total")
                log_event(
                    "recovery_sweep_order_failed",
                    order_id=order.id,
                    bot_id=order.bot_id,
                    level=logging.ERROR,
                    exc_info=True,
                )
                report.failed_orders.append(order_id)

    metrics_store.increment("recovery_sweep_total")
    if report.repaired_bots or report.completed_orders or report.requeued_orders:
        log_event(
            "recovery_sweep_applied",
            repaired_bots=report.repaired_bots,
            completed=len(report.completed_orders),
            requeued=len(report.requeued_orders),
            rescheduled=len(report.rescheduled_orders),
        )
    return report
