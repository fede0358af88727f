from app.integrations.errors import (
    IntegrationBadGatewayError,
    IntegrationError,
    IntegrationTimeoutError,
    IntegrationUnavailableError,
    error_for_status,
)
from app.integrations.qstash_client import (
    CompletionDispatcherProtocol,
    QStashClient,
    get_qstash_client,
)

__all__ = [
    "CompletionDispatcherProtocol",
    "IntegrationError",
    "IntegrationTimeoutError",
    "IntegrationUnavailableError",
    "IntegrationBadGatewayError",
    "QStashClient",
    "error_for_status",
    "get_qstash_client",
]
