"""Event definitions emitted by browser contexts."""

import os
from typing import Any

from bubus import BaseEvent


def _get_timeout(env_var: str, default: float) -> float | None:
    """Safely parse environment variable timeout values.

    Args:
        env_var: Environment variable name (e.g. 'TIMEOUT_PageCreatedEvent')
        default: Default timeout value as float (e.g. 10.0)

    Returns:
        Parsed float value or the default if parsing fails
    """
    env_value = os.getenv(env_var)
    if env_value:
        try:
            parsed = float(env_value)
            if parsed < 0:
                return default
            return parsed
        except (ValueError, TypeError):
            pass

    return default


class PageCreatedEvent(BaseEvent[None]):
    """A page was created inside a browser context.

    Fired both for pages opened through the API and for pages the remote
    browser opened on its own (popups, window.open).
    """

    context_id: str
    target_id: str
    page: Any = None

    event_timeout: float | None = _get_timeout('TIMEOUT_PageCreatedEvent', 10.0)

    @property
    def payload(self) -> Any:
        return self.page


class PageClosedEvent(BaseEvent[None]):
    """A page of a browser context went away."""

    context_id: str
    target_id: str
    page: Any = None

    event_timeout: float | None = _get_timeout('TIMEOUT_PageClosedEvent', 10.0)

    @property
    def payload(self) -> Any:
        return self.page


class BrowserContextClosedEvent(BaseEvent[None]):
    """A browser context was disposed."""

    context_id: str

    event_timeout: float | None = _get_timeout('TIMEOUT_BrowserContextClosedEvent', 10.0)

    @property
    def payload(self) -> Any:
        return self.context_id


# Event kinds accepted by BrowserContext.wait_for_event
EVENT_PAGE = 'page'

WAIT_FOR_EVENT_TYPES: dict[str, type[BaseEvent[Any]]] = {
    EVENT_PAGE: PageCreatedEvent,
}
