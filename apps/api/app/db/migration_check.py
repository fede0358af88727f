"""Schema bootstrap and Alembic revision checks."""

from __future__ import annotations

from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from app.config import is_production_mode, settings
from app.db.base import Base
from app.observability import log_event

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _script_directory() -> ScriptDirectory:
    return ScriptDirectory.from_config(Config(str(ALEMBIC_INI)))


def get_alembic_head_revision() -> str:
    return _script_directory().get_current_head()


def get_current_db_revision(engine: Engine) -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def assert_db_is_up_to_date(engine: Engine) -> None:
    current = get_current_db_revision(engine)
    head = get_alembic_head_revision()
    if current != head:
        raise RuntimeError(
            f"Database schema not up to date ({current or 'empty'} != {head}). "
            "Run: alembic upgrade head"
        )


def maybe_create_schema(engine: Engine) -> bool:
    """Create missing tables outside production and stamp them at head.

    Returns True when the schema was (re)created.
    """
    if not settings.auto_create_schema:
        return False
    if is_production_mode():
        raise RuntimeError("AUTO_CREATE_SCHEMA must be disabled in APP_MODE=production")

    Base.metadata.create_all(bind=engine)
    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        if context.get_current_revision() is None:
            context.stamp(_script_directory(), "head")
            log_event("schema_created", revision=get_alembic_head_revision())
    return True
