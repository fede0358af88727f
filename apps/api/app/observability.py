"""JSON logging and in-process counters for the scheduler."""

import json
import logging
import time
from collections import defaultdict
from contextvars import ContextVar
from dataclasses import dataclass
from threading import Lock

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

logger = logging.getLogger("fulfillment.scheduler")

_RECORD_IDS = ("order_id", "bot_id")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None) or _request_id_ctx.get(),
        }
        for key in _RECORD_IDS:
            payload[key] = getattr(record, key, None)
        detail = getattr(record, "detail", None)
        if detail:
            payload["detail"] = detail
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: int | str = logging.INFO) -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)


@dataclass
class _Timing:
    count: int = 0
    total_s: float = 0.0
    max_s: float = 0.0

    def add(self, value_s: float) -> None:
        self.count += 1
        self.total_s += value_s
        self.max_s = max(self.max_s, value_s)


@dataclass
class MetricsSnapshot:
    counters: dict[str, int]
    timings: dict[str, dict[str, float]]


class MetricsStore:
    """Thread-safe counters plus count/avg/max per timed block."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, _Timing] = defaultdict(_Timing)
        self._lock = Lock()

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def observe(self, name: str, value_s: float) -> None:
        with self._lock:
            self._timings[name].add(value_s)

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                counters=dict(self._counters),
                timings={
                    name: {
                        "count": timing.count,
                        "avg_s": timing.total_s / timing.count,
                        "max_s": timing.max_s,
                    }
                    for name, timing in self._timings.items()
                    if timing.count
                },
            )


metrics_store = MetricsStore()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def log_event(
    message: str,
    *,
    order_id: object | None = None,
    bot_id: object | None = None,
    level: int = logging.INFO,
    exc_info: bool = False,
    **detail: object,
) -> None:
    """Log ``message`` with the current request id and any extra detail fields."""
    logger.log(
        level,
        message,
        exc_info=exc_info,
        extra={
            "request_id": get_request_id(),
            "order_id": None if order_id is None else str(order_id),
            "bot_id": None if bot_id is None else str(bot_id),
            "detail": detail or None,
        },
    )


class observe_timing:
    def __init__(self, metric_name: str, store: MetricsStore | None = None) -> None:
        self.metric_name = metric_name
        self.store = store or metrics_store
        self._start = 0.0

    def __enter__(self) -> "observe_timing":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.store.observe(self.metric_name, time.perf_counter() - self._start)
