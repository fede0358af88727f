from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.completion_service import CompletionScheduler
from app.services.completion_service import get_completion_scheduler as _build_scheduler
from app.services.ledger import Ledger


def get_ledger(db: Session = Depends(get_db)) -> Ledger:
    return Ledger(db)


def get_completion_scheduler() -> CompletionScheduler:
    return _build_scheduler()
