import threading
from datetime import timedelta

from scheduler_fixtures import T0
from sqlalchemy.exc import IntegrityError, OperationalError

from app.models.resume_lock import ResumeLock
from app.observability import metrics_store
from app.services.ledger import Ledger
from app.services.resume_lock import RESUME_LOCK_KEY, try_acquire_resume_lock


def test_first_caller_acquires_lock(ledger):
    assert try_acquire_resume_lock(ledger, now=T0, ttl_s=5) is True

    lock = ledger.db.get(ResumeLock, RESUME_LOCK_KEY)
    assert lock is not None


def test_lock_is_held_until_ttl_expires(ledger):
    assert try_acquire_resume_lock(ledger, now=T0, ttl_s=5) is True

    assert try_acquire_resume_lock(ledger, now=T0 + timedelta(seconds=1), ttl_s=5) is False
    assert try_acquire_resume_lock(ledger, now=T0 + timedelta(seconds=4), ttl_s=5) is False
    assert try_acquire_resume_lock(ledger, now=T0 + timedelta(seconds=5), ttl_s=5) is True
    assert try_acquire_resume_lock(ledger, now=T0 + timedelta(seconds=6), ttl_s=5) is False


def test_keys_are_independent(ledger):
    assert try_acquire_resume_lock(ledger, now=T0, key="a") is True
    assert try_acquire_resume_lock(ledger, now=T0, key="b") is True
    assert try_acquire_resume_lock(ledger, now=T0, key="a") is False


def test_insert_race_reports_not_acquired(ledger, monkeypatch):
    def lost_race():
        raise IntegrityError("INSERT INTO resume_locks", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(ledger.db, "flush", lost_race)

    assert try_acquire_resume_lock(ledger, now=T0) is False


def test_storage_failure_fails_open(ledger, monkeypatch):
    def broken(*_args, **_kwargs):
        raise OperationalError("UPDATE resume_locks", {}, Exception("no such table"))

    monkeypatch.setattr(ledger.db, "execute", broken)

    assert try_acquire_resume_lock(ledger, now=T0) is True
    assert metrics_store.counter("resume_lock_error_total") == 1


def test_concurrent_first_acquisitions_grant_one_lock(file_session_factory):
    callers = 8
    barrier = threading.Barrier(callers)
    results = []

    def _acquire():
        with file_session_factory() as db:
            barrier.wait()
            results.append(try_acquire_resume_lock(Ledger(db), now=T0, ttl_s=5))

    threads = [threading.Thread(target=_acquire) for _ in range(callers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == callers
    assert results.count(True) == 1
    assert metrics_store.counter("resume_lock_error_total") == 0
