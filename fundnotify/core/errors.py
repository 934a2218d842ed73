from __future__ import annotations


class NotifyError(Exception):
    """Base error for fundnotify."""


class NotificationValidationError(NotifyError):
    """Malformed notification request; nothing was persisted."""

    def __init__(self, message: str, *, index: int | None = None, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.errors = errors or []


class NotificationNotFoundError(NotifyError):
    """Notification does not exist or is not owned by the caller."""


class InvalidTransitionError(NotifyError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class TransportError(NotifyError):
    """Channel transport failed to hand off a notification."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class TransportConfigError(NotifyError):
    """Missing or invalid transport configuration."""


class StoreError(NotifyError):
    """Persistence layer failure."""
