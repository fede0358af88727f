import time
from typing import Any, Protocol

import httpx

from app.config import settings
from app.integrations.errors import (
    IntegrationError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
    error_for_status,
)

_SERVICE = "qstash"


class CompletionDispatcherProtocol(Protocol):
    def publish_json(
        self,
        url: str,
        body: dict[str, Any],
        *,
        delay_s: int,
        deduplication_id: str,
    ) -> str | None: ...


class QStashClient:
    """Enqueue delayed, deduplicated HTTP callbacks with Upstash QStash."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout_s: float,
        max_retries: int,
        backoff_s: float,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s

    def publish_json(
        self,
        url: str,
        body: dict[str, Any],
        *,
        delay_s: int,
        deduplication_id: str,
    ) -> str | None:
        """Publish ``body`` to be POSTed to ``url`` after ``delay_s`` seconds.

        Returns the QStash message id, or None when the message was
        deduplicated against an earlier publish with the same id.
        """
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Upstash-Delay": f"{max(0, int(delay_s))}s",
            "Upstash-Deduplication-Id": deduplication_id,
        }

        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                with httpx.Client(timeout=self.timeout_s) as client:
                    response = client.post(
                        f"{self.base_url}/v2/publish/{url}",
                        json=body,
                        headers=headers,
                    )

                error = error_for_status(_SERVICE, response.status_code)
                if error is not None:
                    raise error
                return _message_id(response)
            except httpx.TimeoutException:
                integration_error = IntegrationTimeoutError(_SERVICE)
            except httpx.TransportError as err:
                integration_error = IntegrationUnavailableError(_SERVICE, str(err))
            except IntegrationError as err:
                if not err.retryable:
                    raise
                integration_error = err

            if attempt >= self.max_retries:
                raise integration_error
            time.sleep(self.backoff_s * (2**attempt))

        return None


def _message_id(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict) or payload.get("deduplicated"):
        return None
    message_id = payload.get("messageId")
    return message_id if isinstance(message_id, str) else None


def get_qstash_client() -> QStashClient:
    return QStashClient(
        base_url=settings.qstash_url,
        token=settings.qstash_token,
        timeout_s=settings.qstash_timeout_s,
        max_retries=settings.qstash_max_retries,
        backoff_s=settings.qstash_backoff_s,
    )
