import os

os.environ.setdefault("FULFILLMENT_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("FULFILLMENT_TESTING", "true")

from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import app.models  # noqa: F401,E402
from app.config import settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import build_engine, build_session_factory  # noqa: E402
from app.db.session import engine as app_engine  # noqa: E402
from app.dependencies import get_completion_scheduler  # noqa: E402
from app.main import app  # noqa: E402
from app.observability import metrics_store  # noqa: E402
from app.services.completion_service import CompletionScheduler  # noqa: E402
from app.services.ledger import Ledger  # noqa: E402
from scheduler_fixtures import CALLBACK_URL, FakeDispatcher  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_schema():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture
def db_session():
    db = build_session_factory(app_engine)()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def ledger(db_session):
    return Ledger(db_session)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def scheduler(dispatcher):
    return CompletionScheduler(dispatcher=dispatcher, callback_url=CALLBACK_URL)


@pytest.fixture
def pull_scheduler():
    return CompletionScheduler()


@pytest.fixture
def file_session_factory(tmp_path: Path):
    """Sessions on a file-backed SQLite database, for multi-threaded tests."""
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'scheduler.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture
def client(scheduler):
    app.dependency_overrides[get_completion_scheduler] = lambda: scheduler
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
