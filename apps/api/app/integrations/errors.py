"""Failures talking to an outbound queue or webhook provider."""

from dataclasses import dataclass


@dataclass
class IntegrationError(Exception):
    service: str
    code: str
    message: str
    retryable: bool = False
    status_code: int | None = None

    def __str__(self) -> str:
        suffix = f" (HTTP {self.status_code})" if self.status_code is not None else ""
        return f"{self.service}:{self.code}:{self.message}{suffix}"


class IntegrationTimeoutError(IntegrationError):
    def __init__(self, service: str, message: str = "Upstream timeout") -> None:
        super().__init__(service, "TIMEOUT", message, retryable=True)


class IntegrationUnavailableError(IntegrationError):
    """Transport failure, throttling or a 5xx. Worth another attempt."""

    def __init__(
        self, service: str, message: str = "Upstream unavailable", status_code: int | None = None
    ) -> None:
        super().__init__(service, "UNAVAILABLE", message, True, status_code)


class IntegrationBadGatewayError(IntegrationError):
    """The provider rejected the request; retrying will not help."""

    def __init__(
        self,
        service: str,
        message: str = "Unexpected upstream response",
        status_code: int | None = None,
    ) -> None:
        super().__init__(service, "BAD_GATEWAY", message, False, status_code)


def error_for_status(service: str, status_code: int) -> IntegrationError | None:
    """Map an HTTP response status onto the error it represents, if any."""
    if status_code < 400:
        return None
    message = f"{service} returned {status_code}"
    if status_code == 429 or status_code >= 500:
        return IntegrationUnavailableError(service, message, status_code=status_code)
    return IntegrationBadGatewayError(service, message, status_code=status_code)
