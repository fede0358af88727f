"""Storage handle for orders, bots and the order-number sequence.

Every read filters out soft-deleted rows. Every write that can race with
another actor is a conditioned UPDATE: it only applies while the row still
matches the expected prior state, and the caller learns whether it applied
from the returned flag (zero rows affected means somebody else got there
first).
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import and_, case, select, update
from sqlalchemy.orm import Session

from app.models.bot import Bot
from app.models.enums import BotStatus, BotType, OrderStatus, OrderType
from app.models.ids import new_uuid7, utc_now
from app.models.order import Order
from app.models.order_number import OrderNumberAllocation

_NO_SYNC = {"synchronize_session": False}


def claim_priority():
    """VIP before NORMAL, then oldest order number first."""
    return (
        case((Order.type == OrderType.VIP, 0), else_=1),
        Order.order_number.asc(),
    )


def _pending_of(order_type: OrderType):
    return and_(Order.status == OrderStatus.PENDING, Order.type == order_type)


def display_priority():
    """Pending VIP, pending NORMAL, PROCESSING, then COMPLETE.

    Pending orders are FIFO by order number; every group falls back to the
    most recently created first.
    """
    return (
        case(
            (_pending_of(OrderType.VIP), 0),
            (_pending_of(OrderType.NORMAL), 1),
            (Order.status == OrderStatus.PROCESSING, 2),
            else_=3,
        ),
        case((Order.status == OrderStatus.PENDING, Order.order_number), else_=None),
        Order.created_at.desc(),
        Order.id.desc(),
    )


class Ledger:
    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on success, roll back on any exception."""
        try:
            yield self.db
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------ reads

    def get_order(self, order_id: uuid.UUID) -> Order | None:
        return self.db.scalar(
            select(Order)
            .where(Order.id == order_id, Order.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )

    def get_bot(self, bot_id: uuid.UUID) -> Bot | None:
        return self.db.scalar(
            select(Bot)
            .where(Bot.id == bot_id, Bot.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )

    def list_orders(self) -> list[Order]:
        return list(
            self.db.scalars(
                select(Order)
                .where(Order.deleted_at.is_(None))
                .order_by(*display_priority())
                .execution_options(populate_existing=True)
            )
        )

    def list_bots(self) -> list[Bot]:
        return list(
            self.db.scalars(
                select(Bot)
                .where(Bot.deleted_at.is_(None))
                .order_by(Bot.created_at.desc(), Bot.id.desc())
                .execution_options(populate_existing=True)
            )
        )

    def next_pending_order(self) -> Order | None:
        return self.db.scalar(
            select(Order)
            .where(Order.status == OrderStatus.PENDING, Order.deleted_at.is_(None))
            .order_by(*claim_priority())
            .limit(1)
            .execution_options(populate_existing=True)
        )

    def processing_orders(self) -> list[Order]:
        return list(
            self.db.scalars(
                select(Order)
                .where(Order.status == OrderStatus.PROCESSING, Order.deleted_at.is_(None))
                .order_by(Order.order_number.asc())
                .execution_options(populate_existing=True)
            )
        )

    def bot_types(self, bot_ids: set[uuid.UUID]) -> dict[uuid.UUID, BotType]:
        if not bot_ids:
            return {}
        rows = self.db.execute(
            select(Bot.id, Bot.bot_type).where(Bot.id.in_(bot_ids), Bot.deleted_at.is_(None))
        )
        return {bot_id: bot_type for bot_id, bot_type in rows}

    def working_bots(self) -> list[Bot]:
        return list(
            self.db.scalars(
                select(Bot)
                .where(Bot.status == BotStatus.PROCESSING, Bot.deleted_at.is_(None))
                .execution_options(populate_existing=True)
            )
        )

    # ---------------------------------------------------------------- inserts

    def allocate_order_number(self, now: datetime | None = None) -> int:
        allocation = OrderNumberAllocation(allocated_at=now or utc_now())
        self.db.add(allocation)
        self.db.flush()
        return allocation.id

    def add_order(self, order_type: OrderType, now: datetime | None = None) -> Order:
        now = now or utc_now()
        order = Order(
            id=new_uuid7(),
            order_number=self.allocate_order_number(now),
            type=order_type,
            status=OrderStatus.PENDING,
            bot_id=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def add_bot(self, bot_type: BotType, now: datetime | None = None) -> Bot:
        now = now or utc_now()
        bot = Bot(
            id=new_uuid7(),
            bot_type=bot_type,
            status=BotStatus.IDLE,
            current_order_id=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(bot)
        self.db.flush()
        return bot

    # ------------------------------------------------------ conditioned writes

    def start_order(self, order_id: uuid.UUID, bot_id: uuid.UUID, now: datetime) -> bool:
        """PENDING -> PROCESSING, owned by ``bot_id``."""
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
                Order.deleted_at.is_(None),
            )
            .values(
                status=OrderStatus.PROCESSING,
                bot_id=bot_id,
                processing_started_at=now,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def engage_bot(self, bot_id: uuid.UUID, order_id: uuid.UUID, now: datetime) -> bool:
        """IDLE -> PROCESSING, working on ``order_id``."""
        result = self.db.execute(
            update(Bot)
            .where(
                Bot.id == bot_id,
                Bot.status == BotStatus.IDLE,
                Bot.deleted_at.is_(None),
            )
            .values(status=BotStatus.PROCESSING, current_order_id=order_id, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def complete_order(self, order_id: uuid.UUID, bot_id: uuid.UUID, now: datetime) -> bool:
        """PROCESSING -> COMPLETE, only while still owned by ``bot_id``."""
        result = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PROCESSING,
                Order.bot_id == bot_id,
                Order.deleted_at.is_(None),
            )
            .values(status=OrderStatus.COMPLETE, completed_at=now, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def requeue_order(
        self,
        order_id: uuid.UUID,
        now: datetime,
        *,
        bot_id: uuid.UUID | None = None,
    ) -> bool:
        """PROCESSING -> PENDING with ownership and timestamps cleared.

        When ``bot_id`` is given the order must still be owned by that bot.
        """
        conditions = [
            Order.id == order_id,
            Order.status == OrderStatus.PROCESSING,
            Order.deleted_at.is_(None),
        ]
        if bot_id is not None:
            conditions.append(Order.bot_id == bot_id)
        result = self.db.execute(
            update(Order)
            .where(*conditions)
            .values(
                status=OrderStatus.PENDING,
                bot_id=None,
                processing_started_at=None,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def requeue_orders_of_bot(self, bot_id: uuid.UUID, now: datetime) -> int:
        result = self.db.execute(
            update(Order)
            .where(
                Order.bot_id == bot_id,
                Order.status == OrderStatus.PROCESSING,
                Order.deleted_at.is_(None),
            )
            .values(
                status=OrderStatus.PENDING,
                bot_id=None,
                processing_started_at=None,
                completed_at=None,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        return int(result.rowcount or 0)

    def release_bot(
        self,
        bot_id: uuid.UUID,
        now: datetime,
        *,
        order_id: uuid.UUID | None = None,
    ) -> bool:
        """PROCESSING -> IDLE.

        With ``order_id`` the bot is only released while it still works on
        that order, so a bot that already moved on is never freed twice.
        """
        conditions = [
            Bot.id == bot_id,
            Bot.status == BotStatus.PROCESSING,
            Bot.deleted_at.is_(None),
        ]
        if order_id is not None:
            conditions.append(Bot.current_order_id == order_id)
        result = self.db.execute(
            update(Bot)
            .where(*conditions)
            .values(status=BotStatus.IDLE, current_order_id=None, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def release_orphaned_bots(self, now: datetime) -> int:
        """PROCESSING bots with no current order go back to IDLE."""
        result = self.db.execute(
            update(Bot)
            .where(
                Bot.status == BotStatus.PROCESSING,
                Bot.current_order_id.is_(None),
                Bot.deleted_at.is_(None),
            )
            .values(status=BotStatus.IDLE, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return int(result.rowcount or 0)

    def soft_delete_order(self, order_id: uuid.UUID, now: datetime) -> bool:
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def soft_delete_bot(self, bot_id: uuid.UUID, now: datetime) -> bool:
        result = self.db.execute(
            update(Bot)
            .where(Bot.id == bot_id, Bot.deleted_at.is_(None))
            .values(
                status=BotStatus.IDLE,
                current_order_id=None,
                deleted_at=now,
                updated_at=now,
            )
            .execution_options(**_NO_SYNC)
        )
        return result.rowcount == 1

    def soft_delete_all_orders(self, now: datetime) -> int:
        result = self.db.execute(
            update(Order)
            .where(Order.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return int(result.rowcount or 0)

    def reset_all_bots(self, now: datetime) -> int:
        result = self.db.execute(
            update(Bot)
            .where(Bot.deleted_at.is_(None))
            .values(status=BotStatus.IDLE, current_order_id=None, updated_at=now)
            .execution_options(**_NO_SYNC)
        )
        return int(result.rowcount or 0)
