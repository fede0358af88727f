from fastapi import APIRouter

from app.observability import metrics_store
from app.schemas.health import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Scheduler metrics", response_model=MetricsResponse)
def metrics_endpoint() -> MetricsResponse:
    snapshot = metrics_store.snapshot()
    return MetricsResponse(counters=snapshot.counters or {}, timings=snapshot.timings or {})
