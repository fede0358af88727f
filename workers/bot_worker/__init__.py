"""Bot worker module exports."""

from .worker import (
    BotWorkerSettings,
    HttpResult,
    TickResult,
    load_settings,
    request_once,
    request_with_retries,
    run_forever,
    run_tick,
)

__all__ = [
    "BotWorkerSettings",
    "HttpResult",
    "TickResult",
    "load_settings",
    "request_once",
    "request_with_retries",
    "run_forever",
    "run_tick",
]
