"""Exceptions raised by browser contexts and their collaborators."""

from typing import Any


class BrowserContextError(Exception):
    """Base exception for all browser context errors.

    Carries the operation that failed and the identity of the context it ran
    against, so that errors surfacing far from their origin stay diagnosable.
    """

    fatal: bool = False

    def __init__(
        self,
        message: str,
        context_id: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.context_id = context_id
        self.operation = operation
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.operation and self.context_id is not None:
            return f'{self.operation} (bctxid:{self.context_id!r}): {self.message}'
        elif self.operation:
            return f'{self.operation}: {self.message}'
        return self.message


class UsageError(BrowserContextError, ValueError):
    """Raised when an operation is called with invalid arguments or in an invalid state."""
    pass


class FatalUsageError(UsageError):
    """Usage error that leaves the caller nothing to recover, e.g. closing the default context."""

    fatal = True


class InvalidURLError(UsageError):
    """Raised when a URL cannot be parsed."""

    def __init__(self, message: str, url: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.url = url


class InvalidPermissionError(UsageError):
    """Raised when a permission name has no protocol counterpart."""

    def __init__(self, permission: str, **kwargs: Any):
        super().__init__(f'{permission!r} is an invalid permission', **kwargs)
        self.permission = permission


class InvalidCookieError(UsageError):
    """Raised when a cookie misses the fields required to set it."""

    def __init__(self, message: str, cookie: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.cookie = cookie


class ProtocolError(BrowserContextError):
    """Raised when a protocol command or a collaborator call fails."""
    pass


class NotImplementedFeatureError(BrowserContextError, NotImplementedError):
    """Raised by operations that exist on the API surface but are not implemented."""

    fatal = True


class WaitTimeoutError(BrowserContextError, TimeoutError):
    """Raised when a wait exceeds its deadline."""

    def __init__(self, event: str, timeout: float, **kwargs: Any):
        super().__init__(f'waitForEvent {event!r} timed out after {timeout:g}ms', **kwargs)
        self.event = event
        self.timeout = timeout


class WaitCancelledError(BrowserContextError):
    """Raised when the scope a wait belongs to is cancelled before it resolves."""

    def __init__(self, message: str, cause: BaseException | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.cause = cause


class PredicateError(BrowserContextError):
    """Raised when a wait predicate raises."""
    pass


class EventPayloadError(BrowserContextError):
    """Raised when an event does not carry the payload its kind promises."""

    fatal = True


class BrowserContextClosedError(BrowserContextError):
    """Cancellation cause recorded when a context is closed."""
    pass


class BrowserClosedError(BrowserContextError):
    """Cancellation cause recorded when the owning browser is closed."""
    pass
