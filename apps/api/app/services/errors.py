from dataclasses import dataclass


@dataclass
class SchedulerError(Exception):
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class NotFoundError(SchedulerError):
    def __init__(self, message: str = "Entity not found") -> None:
        super().__init__(code="NOT_FOUND", message=message, retryable=False)


class ConflictError(SchedulerError):
    def __init__(self, message: str = "Concurrent update lost the race") -> None:
        super().__init__(code="CONFLICT", message=message, retryable=True)


class InvalidTransitionError(SchedulerError):
    def __init__(self, message: str) -> None:
        super().__init__(code="INVALID_TRANSITION", message=message, retryable=False)


class BusyResourceError(SchedulerError):
    def __init__(self, message: str = "Resource is already engaged") -> None:
        super().__init__(code="BUSY", message=message, retryable=False)


class ConfigurationError(SchedulerError):
    def __init__(self, message: str) -> None:
        super().__init__(code="CONFIGURATION", message=message, retryable=False)


class StorageError(SchedulerError):
    def __init__(self, message: str = "Unexpected persistence failure") -> None:
        super().__init__(code="STORAGE", message=message, retryable=False)
