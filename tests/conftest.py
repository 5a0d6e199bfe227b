"""Pytest configuration and fixtures for the cdpcontext test suite.

This module provides the fake collaborators the browser context tests run
against, so no real browser is needed:

    - FakePage records every state update it receives and can be told to
      fail specific operations.
    - FakeBrowser keeps a page registry, creates FakePages on demand and
      exposes an ``AsyncMock`` CDP client whose commands tests can inspect.
    - make_cdp_client builds a mock that passes as a ``cdp_use.CDPClient``
      for the Browser and Page tests.

Every fixture that owns an event emitter stops it on teardown. A bubus bus
keeps a run-loop task alive once it has dispatched an event, and an
unstopped bus blocks the event loop from shutting down.

Path Setup:
    The src directory is added to sys.path to enable imports like:
    ``from cdpcontext.browser.context import BrowserContext``
"""

import asyncio
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from cdp_use import CDPClient  # noqa: E402

from cdpcontext.browser.browser import Browser  # noqa: E402
from cdpcontext.browser.context import BrowserContext  # noqa: E402
from cdpcontext.browser.emitter import CancelScope, EventEmitter  # noqa: E402
from cdpcontext.browser.options import BrowserContextOptions  # noqa: E402


class FakePage:
    """Page stand-in recording the updates pushed to it."""

    def __init__(self, target_id, context_id="", fail_on=()):
        self.target_id = target_id
        self.context_id = context_id
        self.session_id = f"session-{target_id}"
        self.fail_on = set(fail_on)
        self.calls = []

    async def _record(self, name, value):
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed on {self.target_id}")
        self.calls.append((name, value))

    async def evaluate_on_new_document(self, source):
        await self._record("script", source)

    async def update_geolocation(self, geolocation):
        await self._record("geolocation", geolocation)

    async def update_http_credentials(self, credentials):
        await self._record("http_credentials", credentials)

    async def update_offline(self, offline):
        await self._record("offline", offline)


class FakeBrowser:
    """Browser stand-in with a page registry and a mocked CDP client."""

    def __init__(self):
        self.cdp_client = AsyncMock()
        self.pages = []
        self.contexts = {}
        # every context built against this browser, closed ones included
        self.created_contexts = []
        self.disposed = []
        self.page_fail_on = ()
        self.new_page_error = None
        self._next_target = 0

    def get_pages(self):
        return list(self.pages)

    def add_page(self, context_id="", fail_on=()):
        """Register a page directly, without running context initialisation."""
        self._next_target += 1
        page = FakePage(f"T{self._next_target}", context_id, fail_on)
        self.pages.append(page)
        return page

    async def new_page_in_context(self, context_id):
        if self.new_page_error is not None:
            raise self.new_page_error
        self._next_target += 1
        page = FakePage(f"T{self._next_target}", context_id, self.page_fail_on)
        context = self.contexts[context_id]
        await context.initialize_page(page, on_ready=lambda: self.pages.append(page))
        context.emit_page(page)
        return page

    async def dispose_context(self, context_id):
        self.disposed.append(context_id)
        self.pages = [page for page in self.pages if page.context_id != context_id]

    async def stop_emitters(self):
        for context in self.created_contexts:
            await context.emitter.stop()


def make_context(browser, context_id="", options=None, parent_scope=None):
    """Build a BrowserContext wired into a FakeBrowser.

    Must be called from inside a running event loop.
    """
    scope = parent_scope.child(f"ctx:{context_id}") if parent_scope else CancelScope(f"ctx:{context_id}")
    context = BrowserContext(
        browser=browser,
        id=context_id,
        options=options or BrowserContextOptions(),
        scope=scope,
    )
    browser.contexts[context_id] = context
    browser.created_contexts.append(context)
    return context


def make_cdp_client():
    """A mock that passes for a started ``cdp_use.CDPClient``."""
    client = MagicMock(spec=CDPClient)
    client.send = AsyncMock()
    client.register = MagicMock()
    client.start = AsyncMock()
    client.stop = AsyncMock()
    client.send.Target.attachToTarget.side_effect = lambda params, **kwargs: {
        "sessionId": f"session-{params['targetId']}"
    }
    return client


async def leftover_tasks(baseline, wait=1.0):
    """Return the tasks started after ``baseline`` that are still running.

    Polls for up to ``wait`` seconds so tasks that are already finishing get
    the chance to do so.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + wait
    while True:
        leftover = asyncio.all_tasks() - baseline - {asyncio.current_task()}
        if not leftover or loop.time() >= deadline:
            return leftover
        await asyncio.sleep(0.02)


@pytest_asyncio.fixture()
async def fake_browser():
    browser = FakeBrowser()
    yield browser
    await browser.stop_emitters()


@pytest.fixture()
def cdp_client():
    return make_cdp_client()


@pytest_asyncio.fixture()
async def browser(cdp_client):
    """A Browser connected through the mocked CDP client, closed on teardown."""
    browser = Browser()
    await browser.connect(cdp_client=cdp_client)
    yield browser
    await browser.close()


@pytest_asyncio.fixture()
async def emitter():
    emitter = EventEmitter()
    yield emitter
    await emitter.stop()
