"""Browser contexts, pages and the CDP browser connection."""

from cdpcontext.browser.browser import Browser
from cdpcontext.browser.context import BrowserContext
from cdpcontext.browser.cookies import Cookie, CookieSameSite
from cdpcontext.browser.emitter import CancelScope, EventEmitter
from cdpcontext.browser.events import BrowserContextClosedEvent, PageClosedEvent, PageCreatedEvent
from cdpcontext.browser.options import BrowserContextOptions, Geolocation, GrantPermissionsOptions, HTTPCredentials
from cdpcontext.browser.page import Page
from cdpcontext.browser.scripts import JSFunction
from cdpcontext.browser.waiter import EventWaiter, WaiterState

__all__ = [
    "Browser",
    "BrowserContext",
    "BrowserContextClosedEvent",
    "BrowserContextOptions",
    "CancelScope",
    "Cookie",
    "CookieSameSite",
    "EventEmitter",
    "EventWaiter",
    "Geolocation",
    "GrantPermissionsOptions",
    "HTTPCredentials",
    "JSFunction",
    "Page",
    "PageClosedEvent",
    "PageCreatedEvent",
    "WaiterState",
]
