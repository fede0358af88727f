import threading
import uuid
from datetime import timedelta

from scheduler_fixtures import FakeDispatcher, T0

from app.integrations.errors import IntegrationUnavailableError
from app.models.enums import BotStatus, BotType, OrderStatus, OrderType
from app.observability import metrics_store
from app.services.claim_service import ClaimStatus, assign_to_bot, claim_for_bot
from app.services.completion_service import CompletionScheduler
from app.services.ledger import Ledger


def _seed(ledger, *order_types, bots=(BotType.NORMAL,)):
    with ledger.transaction():
        orders = [ledger.add_order(order_type, T0) for order_type in order_types]
        created_bots = [ledger.add_bot(bot_type, T0) for bot_type in bots]
    return orders, created_bots


def test_claim_takes_vip_before_normal(ledger, pull_scheduler):
    (normal, vip), (bot,) = _seed(ledger, OrderType.NORMAL, OrderType.VIP)

    result = claim_for_bot(ledger, pull_scheduler, bot.id, now=T0)

    assert result.ok
    assert result.order.id == vip.id
    assert result.order.status == OrderStatus.PROCESSING
    assert result.order.bot_id == bot.id
    assert result.bot.status == BotStatus.PROCESSING
    assert result.bot.current_order_id == vip.id
    assert ledger.get_order(normal.id).status == OrderStatus.PENDING


def test_claim_is_fifo_within_a_type(ledger, pull_scheduler):
    (first, second), (bot_a, bot_b) = _seed(
        ledger, OrderType.NORMAL, OrderType.NORMAL, bots=(BotType.NORMAL, BotType.NORMAL)
    )

    assert claim_for_bot(ledger, pull_scheduler, bot_a.id, now=T0).order.id == first.id
    assert claim_for_bot(ledger, pull_scheduler, bot_b.id, now=T0).order.id == second.id


def test_claim_stamps_processing_start(ledger, pull_scheduler):
    (order,), (bot,) = _seed(ledger, OrderType.NORMAL)
    now = T0 + timedelta(seconds=3)

    claim_for_bot(ledger, pull_scheduler, bot.id, now=now)

    stored = ledger.get_order(order.id)
    assert stored.processing_started_at.replace(tzinfo=None) == now.replace(tzinfo=None)


def test_claim_with_empty_queue(ledger, pull_scheduler):
    _, (bot,) = _seed(ledger)

    result = claim_for_bot(ledger, pull_scheduler, bot.id, now=T0)

    assert result.status == ClaimStatus.NO_ORDER_AVAILABLE
    assert ledger.get_bot(bot.id).status == BotStatus.IDLE
    assert metrics_store.counter("claims_empty_total") == 1


def test_claim_for_unknown_bot(ledger, pull_scheduler):
    _seed(ledger, OrderType.NORMAL, bots=())

    result = claim_for_bot(ledger, pull_scheduler, uuid.uuid4(), now=T0)

    assert result.status == ClaimStatus.BOT_NOT_FOUND


def test_claim_for_deleted_bot(ledger, pull_scheduler):
    _, (bot,) = _seed(ledger, OrderType.NORMAL)
    with ledger.transaction():
        ledger.soft_delete_bot(bot.id, T0)

    assert claim_for_bot(ledger, pull_scheduler, bot.id, now=T0).status == ClaimStatus.BOT_NOT_FOUND


def test_busy_bot_cannot_claim_twice(ledger, pull_scheduler):
    (first, second), (bot,) = _seed(ledger, OrderType.NORMAL, OrderType.NORMAL)
    claim_for_bot(ledger, pull_scheduler, bot.id, now=T0)

    result = claim_for_bot(ledger, pull_scheduler, bot.id, now=T0)

    assert result.status == ClaimStatus.BOT_BUSY
    assert ledger.get_order(second.id).status == OrderStatus.PENDING


def test_claim_schedules_completion_with_bot_delay(ledger, scheduler, dispatcher):
    (order,), (bot,) = _seed(ledger, OrderType.NORMAL, bots=(BotType.VIP,))

    claim_for_bot(ledger, scheduler, bot.id, now=T0)

    assert len(dispatcher.published) == 1
    published = dispatcher.published[0]
    assert published["delay_s"] == 5
    assert published["body"] == {"order_id": str(order.id), "bot_id": str(bot.id)}
    assert published["deduplication_id"].startswith(f"{order.id}-")


def test_scheduling_failure_does_not_undo_claim(ledger):
    (order,), (bot,) = _seed(ledger, OrderType.NORMAL)
    failing = CompletionScheduler(
        dispatcher=FakeDispatcher(error=IntegrationUnavailableError("qstash")),
        callback_url="https://scheduler.test/api/v1/orders/complete",
    )

    result = claim_for_bot(ledger, failing, bot.id, now=T0)

    assert result.ok
    assert ledger.get_order(order.id).status == OrderStatus.PROCESSING
    assert metrics_store.counter("completion_schedule_failed_total") == 1


def test_many_bots_many_orders_each_order_claimed_once(ledger, pull_scheduler):
    order_types = [OrderType.NORMAL, OrderType.VIP] * 4
    orders, bots = _seed(ledger, *order_types, bots=[BotType.NORMAL] * 5)

    claimed = [claim_for_bot(ledger, pull_scheduler, bot.id, now=T0) for bot in bots]

    claimed_ids = [result.order.id for result in claimed if result.ok]
    assert len(claimed_ids) == 5
    assert len(set(claimed_ids)) == 5
    vip_ids = {order.id for order in orders if order.type == OrderType.VIP}
    # All four VIP orders go out before any NORMAL order.
    assert set(claimed_ids[:4]) == vip_ids
    assert claimed_ids[4] == orders[0].id


def test_assign_to_busy_bot_is_rejected(ledger, pull_scheduler):
    (first, second), (bot,) = _seed(ledger, OrderType.NORMAL, OrderType.NORMAL)
    claim_for_bot(ledger, pull_scheduler, bot.id, now=T0)

    result = assign_to_bot(ledger, pull_scheduler, second.id, bot.id, now=T0)

    assert result.status == ClaimStatus.BOT_BUSY


def test_assign_non_pending_order_conflicts(ledger, pull_scheduler):
    (order,), (bot_a, bot_b) = _seed(
        ledger, OrderType.NORMAL, bots=(BotType.NORMAL, BotType.NORMAL)
    )
    claim_for_bot(ledger, pull_scheduler, bot_a.id, now=T0)

    result = assign_to_bot(ledger, pull_scheduler, order.id, bot_b.id, now=T0)

    assert result.status == ClaimStatus.CONFLICT
    assert ledger.get_bot(bot_b.id).status == BotStatus.IDLE
    assert ledger.get_order(order.id).bot_id == bot_a.id


def test_concurrent_claims_for_one_bot_take_one_order(file_session_factory):
    with file_session_factory() as db:
        ledger = Ledger(db)
        with ledger.transaction():
            for _ in range(3):
                ledger.add_order(OrderType.NORMAL, T0)
            bot_id = ledger.add_bot(BotType.NORMAL, T0).id

    statuses: list[ClaimStatus] = []
    barrier = threading.Barrier(4)
    lock = threading.Lock()

    def _claim():
        with file_session_factory() as db:
            barrier.wait()
            result = claim_for_bot(Ledger(db), CompletionScheduler(), bot_id, now=T0)
            with lock:
                statuses.append(result.status)

    threads = [threading.Thread(target=_claim) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert statuses.count(ClaimStatus.OK) == 1
    with file_session_factory() as db:
        ledger = Ledger(db)
        processing = ledger.processing_orders()
        assert len(processing) == 1
        assert processing[0].bot_id == bot_id
        assert ledger.get_bot(bot_id).current_order_id == processing[0].id


def test_concurrent_bots_never_share_an_order(file_session_factory):
    with file_session_factory() as db:
        ledger = Ledger(db)
        with ledger.transaction():
            for _ in range(2):
                ledger.add_order(OrderType.NORMAL, T0)
            bot_ids = [ledger.add_bot(BotType.NORMAL, T0).id for _ in range(6)]

    barrier = threading.Barrier(len(bot_ids))

    def _claim(bot_id):
        with file_session_factory() as db:
            barrier.wait()
            claim_for_bot(Ledger(db), CompletionScheduler(), bot_id, now=T0)

    threads = [threading.Thread(target=_claim, args=(bot_id,)) for bot_id in bot_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    with file_session_factory() as db:
        ledger = Ledger(db)
        owners = [order.bot_id for order in ledger.processing_orders()]
        working = [bot for bot in ledger.list_bots() if bot.status == BotStatus.PROCESSING]
        assert len(owners) == len(set(owners))
        assert {bot.id for bot in working} == set(owners)
        assert all(bot.current_order_id is not None for bot in working)
