from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app.models.enums import OrderStatus, OrderType
from app.models.ids import utc_now
from app.models.order import Order
from app.observability import log_event, metrics_store
from app.services.claim_service import ClaimStatus, assign_to_bot
from app.services.completion_service import CompletionScheduler, finalize_order
from app.services.errors import (
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
)
from app.services.ledger import Ledger
from app.services.recovery_service import SweepReport, run_recovery_sweep
from app.services.resume_lock import try_acquire_resume_lock
from app.services.state_machine import ensure_valid_transition


class UpdateStatus(str, enum.Enum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    BOT_NOT_FOUND = "BOT_NOT_FOUND"
    BOT_BUSY = "BOT_BUSY"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"


_CLAIM_TO_UPDATE = {
    ClaimStatus.OK: UpdateStatus.OK,
    ClaimStatus.BOT_NOT_FOUND: UpdateStatus.BOT_NOT_FOUND,
    ClaimStatus.BOT_BUSY: UpdateStatus.BOT_BUSY,
    ClaimStatus.CONFLICT: UpdateStatus.CONFLICT,
}


@dataclass
class OrderUpdateResult:
    status: UpdateStatus
    order: Order | None = None
    message: str | None = None


@dataclass
class ClearResult:
    orders_cleared: int
    bots_reset: int


def create_order(ledger: Ledger, order_type: OrderType, *, now: datetime | None = None) -> Order:
    try:
        with ledger.transaction():
            order = ledger.add_order(order_type, now or utc_now())
    except SQLAlchemyError as err:
        log_event("order_create_failed", level=logging.ERROR, exc_info=True)
        raise StorageError("Order could not be created") from err

    metrics_store.increment("orders_created_total")
    log_event("order_created", order_id=order.id, order_number=order.order_number)
    return order


def get_order(ledger: Ledger, order_id: uuid.UUID) -> Order:
    order = ledger.get_order(order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def run_guarded_sweep(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    *,
    now: datetime | None = None,
) -> SweepReport | None:
    """Run the recovery sweep if this caller wins the resume lock.

    Never raises: a failed sweep must not stop orders from being listed.
    """
    if not try_acquire_resume_lock(ledger, now=now):
        metrics_store.increment("recovery_sweep_skipped_total")
        return None

    try:
        return run_recovery_sweep(ledger, scheduler, now=now)
    except Exception:
        ledger.db.rollback()
        metrics_store.increment("recovery_sweep_failed_total")
        log_event("recovery_sweep_failed", level=logging.ERROR, exc_info=True)
        return None


def list_orders(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    *,
    now: datetime | None = None,
) -> list[Order]:
    run_guarded_sweep(ledger, scheduler, now=now)
    return ledger.list_orders()


def release_order(ledger: Ledger, order: Order, now: datetime) -> None:
    """Put a PROCESSING order back in the queue and free its bot.

    Must run inside ``ledger.transaction()``.
    """
    if not ledger.requeue_order(order.id, now, bot_id=order.bot_id):
        raise ConflictError("Order is no longer processing")
    if order.bot_id is not None:
        ledger.release_bot(order.bot_id, now, order_id=order.id)


def update_order(
    ledger: Ledger,
    scheduler: CompletionScheduler,
    order_id: uuid.UUID,
    *,
    status: OrderStatus | None = None,
    bot_id: uuid.UUID | None = None,
    bot_id_set: bool = False,
    now: datetime | None = None,
) -> OrderUpdateResult:
    """Generic transition entry point used by manual assignment.

    ``bot_id_set`` tells an explicit ``bot_id=None`` apart from an omitted one.
    """
    now = now or utc_now()
    order = ledger.get_order(order_id)
    if order is None:
        return OrderUpdateResult(status=UpdateStatus.NOT_FOUND, message="Order not found")

    target = status or order.status
    try:
        ensure_valid_transition(order.status, target)
    except InvalidTransitionError as err:
        return OrderUpdateResult(
            status=UpdateStatus.INVALID_TRANSITION, order=order, message=err.message
        )

    bot_changed = bot_id_set and bot_id != order.bot_id
    if target == order.status:
        if bot_changed:
            return OrderUpdateResult(
                status=UpdateStatus.INVALID_TRANSITION,
                order=order,
                message="bot_id can only change together with a status transition",
            )
        return OrderUpdateResult(status=UpdateStatus.OK, order=order)

    if target == OrderStatus.PROCESSING:
        if bot_id is None:
            return OrderUpdateResult(
                status=UpdateStatus.INVALID_TRANSITION,
                order=order,
                message="bot_id is required to start processing",
            )
        if not scheduler.push_enabled:
            raise ConfigurationError(
                "QSTASH_TOKEN and APP_BASE_URL must be configured for manual assignment"
            )
        claim = assign_to_bot(ledger, scheduler, order.id, bot_id, now=now)
        return OrderUpdateResult(
            status=_CLAIM_TO_UPDATE[claim.status],
            order=claim.order or ledger.get_order(order.id),
        )

    if target == OrderStatus.COMPLETE:
        if bot_changed or order.bot_id is None:
            return OrderUpdateResult(
                status=UpdateStatus.INVALID_TRANSITION,
                order=order,
                message="Only the owning bot can complete an order",
            )
        if not finalize_order(ledger, order.id, order.bot_id, now=now, path="manual"):
            return OrderUpdateResult(status=UpdateStatus.CONFLICT, order=ledger.get_order(order.id))
        return OrderUpdateResult(status=UpdateStatus.OK, order=ledger.get_order(order.id))

    # PROCESSING -> PENDING
    try:
        with ledger.transaction():
            release_order(ledger, order, now)
    except ConflictError as err:
        return OrderUpdateResult(
            status=UpdateStatus.CONFLICT, order=ledger.get_order(order.id), message=err.message
        )
    log_event("order_requeued", order_id=order.id, bot_id=order.bot_id)
    return OrderUpdateResult(status=UpdateStatus.OK, order=ledger.get_order(order.id))


def delete_order(ledger: Ledger, order_id: uuid.UUID, *, now: datetime | None = None) -> None:
    """Soft-delete an order; a bot working on it goes back to IDLE."""
    now = now or utc_now()
    with ledger.transaction():
        order = ledger.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status == OrderStatus.PROCESSING and order.bot_id is not None:
            ledger.release_bot(order.bot_id, now, order_id=order.id)
        if not ledger.soft_delete_order(order.id, now):
            raise NotFoundError("Order not found")

    metrics_store.increment("orders_deleted_total")
    log_event("order_deleted", order_id=order_id, bot_id=order.bot_id)


def clear_all_orders(ledger: Ledger, *, now: datetime | None = None) -> ClearResult:
    now = now or utc_now()
    with ledger.transaction():
        orders_cleared = ledger.soft_delete_all_orders(now)
        bots_reset = ledger.reset_all_bots(now)

    log_event("orders_cleared", orders=orders_cleared, bots=bots_reset)
    return ClearResult(orders_cleared=orders_cleared, bots_reset=bots_reset)
