import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from app.config import allowed_origins, ensure_secure_runtime_settings, settings
from app.db.migration_check import maybe_create_schema
from app.db.session import SessionLocal, engine
from app.dependencies import get_completion_scheduler
from app.observability import configure_logging, log_event, metrics_store, set_request_id
from app.routers.bots import router as bots_router
from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router
from app.routers.orders import router as orders_router
from app.services.ledger import Ledger
from app.services.recovery_service import SweepReport, run_recovery_sweep


def run_startup_recovery() -> SweepReport | None:
    """Finish or reschedule work left over from a previous process."""
    db = SessionLocal()
    try:
        return run_recovery_sweep(Ledger(db), get_completion_scheduler())
    except Exception:
        db.rollback()
        log_event("startup_recovery_failed", level=logging.ERROR, exc_info=True)
        return None
    finally:
        db.close()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    import app.models  # noqa: F401 (register all SQLAlchemy models)

    if not settings.testing:
        configure_logging(settings.log_level)
    ensure_secure_runtime_settings()
    maybe_create_schema(engine)
    run_startup_recovery()
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Order fulfillment scheduler: order queue, bot claims and completion",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        "http_request",
        order_id=request.path_params.get("order_id"),
        bot_id=request.path_params.get("bot_id"),
        method=request.method,
        path=request.url.path,
        status=response.status_code,
    )
    return response


app.include_router(health_router)
app.include_router(orders_router)
app.include_router(bots_router)
app.include_router(metrics_router)
