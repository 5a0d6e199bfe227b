"""cdpcontext - isolated browser contexts over the Chrome DevTools Protocol."""

__version__ = "0.1.0"

from cdpcontext.browser import (
    Browser,
    BrowserContext,
    BrowserContextOptions,
    Cookie,
    Geolocation,
    GrantPermissionsOptions,
    HTTPCredentials,
    JSFunction,
    Page,
)
from cdpcontext.config import CONFIG
from cdpcontext.exceptions import (
    BrowserClosedError,
    BrowserContextClosedError,
    BrowserContextError,
    FatalUsageError,
    InvalidCookieError,
    InvalidPermissionError,
    InvalidURLError,
    NotImplementedFeatureError,
    PredicateError,
    ProtocolError,
    UsageError,
    WaitCancelledError,
    WaitTimeoutError,
)
from cdpcontext.logging_config import setup_logging

__all__ = [
    "__version__",
    "Browser",
    "BrowserContext",
    "BrowserContextOptions",
    "Cookie",
    "Geolocation",
    "GrantPermissionsOptions",
    "HTTPCredentials",
    "JSFunction",
    "Page",
    "CONFIG",
    "setup_logging",
    "BrowserContextError",
    "UsageError",
    "FatalUsageError",
    "InvalidURLError",
    "InvalidPermissionError",
    "InvalidCookieError",
    "ProtocolError",
    "NotImplementedFeatureError",
    "WaitTimeoutError",
    "WaitCancelledError",
    "PredicateError",
    "BrowserContextClosedError",
    "BrowserClosedError",
]
