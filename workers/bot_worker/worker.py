"""Bot worker: drives idle bots to claim pending orders on a fixed interval."""

from __future__ import annotations

import json
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class BotWorkerSettings:
    api_base_url: str
    interval_s: int
    timeout_s: float
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    body: Any = None
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1


@dataclass(frozen=True)
class TickResult:
    ok: bool
    claimed_count: int = 0
    idle_bots: int = 0
    error: str | None = None


def load_settings(env: dict[str, str] | None = None) -> BotWorkerSettings:
    source = env if env is not None else os.environ
    api_base_url = source.get(
        "FULFILLMENT_BOT_WORKER_API_BASE_URL", "http://localhost:8000"
    ).strip()
    interval_s = int(source.get("FULFILLMENT_BOT_WORKER_INTERVAL_S", "1"))
    timeout_s = float(source.get("FULFILLMENT_BOT_WORKER_TIMEOUT_S", "5"))
    max_retries = int(source.get("FULFILLMENT_BOT_WORKER_MAX_RETRIES", "2"))
    retry_backoff_s = float(source.get("FULFILLMENT_BOT_WORKER_RETRY_BACKOFF_S", "0.5"))

    if interval_s < 1:
        raise ValueError("FULFILLMENT_BOT_WORKER_INTERVAL_S must be >= 1")
    if timeout_s <= 0:
        raise ValueError("FULFILLMENT_BOT_WORKER_TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError("FULFILLMENT_BOT_WORKER_MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError("FULFILLMENT_BOT_WORKER_RETRY_BACKOFF_S must be >= 0")

    return BotWorkerSettings(
        api_base_url=api_base_url.rstrip("/"),
        interval_s=interval_s,
        timeout_s=timeout_s,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def _decode_body(raw: str) -> tuple[bool, Any, str | None]:
    if not raw:
        return True, None, None
    try:
        return True, json.loads(raw), None
    except json.JSONDecodeError:
        return False, None, "Invalid JSON in API response"


def request_once(
    settings: BotWorkerSettings,
    method: str,
    path: str,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> HttpResult:
    request = urllib.request.Request(
        url=f"{settings.api_base_url}{path}",
        data=b"{}" if method == "POST" else None,
        method=method,
        headers={"Content-Type": "application/json"},
    )

    try:
        with opener(request, timeout=settings.timeout_s) as response:
            valid, body, error = _decode_body(response.read().decode("utf-8"))
            return HttpResult(
                ok=valid,
                body=body,
                status_code=getattr(response, "status", 200),
                error=error,
            )
    except urllib.error.HTTPError as exc:
        return HttpResult(ok=False, status_code=exc.code, error=f"HTTPError: {exc.code}")
    except urllib.error.URLError as exc:
        return HttpResult(ok=False, error=f"URLError: {exc.reason}")


def _is_retryable(result: HttpResult) -> bool:
    if result.ok:
        return False
    if result.status_code is None:
        return True
    if result.status_code in {408, 429}:
        return True
    return result.status_code >= 500


def request_with_retries(
    settings: BotWorkerSettings,
    method: str,
    path: str,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> HttpResult:
    for attempts in range(1, settings.max_retries + 2):
        result = request_once(settings, method, path, opener=opener)
        if result.ok or not _is_retryable(result) or attempts > settings.max_retries:
            return HttpResult(
                ok=result.ok,
                body=result.body,
                status_code=result.status_code,
                error=result.error,
                attempts=attempts,
            )

        sleep(settings.retry_backoff_s * (2 ** (attempts - 1)))

    raise RuntimeError("bot worker retry loop exhausted unexpectedly")


def run_tick(
    settings: BotWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> TickResult:
    """List orders (which lets the server run its recovery sweep), then let
    every idle bot try to claim the next pending order."""
    orders = request_with_retries(settings, "GET", "/api/v1/orders", opener, sleep)
    if not orders.ok:
        return TickResult(ok=False, error=orders.error)

    bots = request_with_retries(settings, "GET", "/api/v1/bots", opener, sleep)
    if not bots.ok:
        return TickResult(ok=False, error=bots.error)

    idle_bots = [bot for bot in (bots.body or {}).get("items", []) if bot.get("status") == "IDLE"]
    claimed = 0
    for bot in idle_bots:
        claim = request_with_retries(
            settings, "POST", f"/api/v1/bots/{bot['id']}/claim", opener, sleep
        )
        if not claim.ok:
            # 409: another worker got there first; 404: the bot was deleted.
            continue
        if (claim.body or {}).get("order") is None:
            break
        claimed += 1

    return TickResult(ok=True, claimed_count=claimed, idle_bots=len(idle_bots))


def run_forever(settings: BotWorkerSettings) -> None:
    while True:
        run_tick(settings)
        time.sleep(settings.interval_s)


if __name__ == "__main__":
    run_forever(load_settings())
