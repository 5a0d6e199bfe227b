"""Timeout policy shared by a context and its pages."""

from cdpcontext.config import CONFIG


class TimeoutSettings:
    """Default and navigation timeouts, in milliseconds.

    An explicit per-call timeout always wins. Otherwise the navigation
    timeout falls back to the default timeout, and both fall back to the
    parent settings (a page's parent is its context) before the configured
    global default.
    """

    def __init__(self, parent: 'TimeoutSettings | None' = None):
        self.parent = parent
        self._default_timeout: float | None = None
        self._default_navigation_timeout: float | None = None

    def set_default_timeout(self, timeout: float) -> None:
        self._default_timeout = timeout

    def set_default_navigation_timeout(self, timeout: float) -> None:
        self._default_navigation_timeout = timeout

    def navigation_timeout(self, timeout: float | None = None) -> float:
        if timeout is not None:
            return timeout
        if self._default_navigation_timeout is not None:
            return self._default_navigation_timeout
        if self._default_timeout is not None:
            return self._default_timeout
        if self.parent is not None:
            return self.parent.navigation_timeout()
        return CONFIG.DEFAULT_TIMEOUT_MS

    def timeout(self, timeout: float | None = None) -> float:
        if timeout is not None:
            return timeout
        if self._default_timeout is not None:
            return self._default_timeout
        if self.parent is not None:
            return self.parent.timeout()
        return CONFIG.DEFAULT_TIMEOUT_MS
