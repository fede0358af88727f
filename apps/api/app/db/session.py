from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

SQLITE_BUSY_TIMEOUT_S = 15


def engine_options(database_url: str) -> dict:
    options: dict = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        return options

    # Concurrent claimers queue on the SQLite write lock instead of failing.
    options["connect_args"] = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_S}
    if ":memory:" in database_url:
        # One shared connection, otherwise every session sees an empty database.
        options["poolclass"] = StaticPool
    return options


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **engine_options(database_url))


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    # Objects stay readable after commit; reads that must see other writers
    # use populate_existing.
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
