"""Browser connection owning the browser contexts and the live page registry.

Example:
    >>> browser = Browser()
    >>> await browser.connect('http://localhost:9222')
    >>> context = await browser.new_context({'offline': True})
    >>> page = await context.new_page()
    >>> await browser.close()
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx
from cdp_use import CDPClient
from cdp_use.cdp.target import SessionID, TargetID
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from cdpcontext.browser.context import BrowserContext
from cdpcontext.browser.emitter import CancelScope
from cdpcontext.browser.options import BrowserContextOptions
from cdpcontext.browser.page import Page
from cdpcontext.config import CONFIG
from cdpcontext.exceptions import BrowserClosedError, ProtocolError, UsageError

logger = logging.getLogger(__name__)


async def resolve_ws_url(cdp_url: str) -> str:
    """Turn an ``http(s)://host:port`` endpoint into the browser WebSocket URL."""
    if cdp_url.startswith('ws'):
        return cdp_url

    # HTTP endpoints expose the WebSocket URL through /json/version
    url = cdp_url.rstrip('/')
    if not url.endswith('/json/version'):
        url = url + '/json/version'

    async with httpx.AsyncClient() as client:
        version_info = await client.get(url)
        version_info.raise_for_status()
        return version_info.json()['webSocketDebuggerUrl']


class Browser(BaseModel):
    """A remote Chromium browser reached over one CDP WebSocket.

    The browser owns the default context (identity ``''``) and every context
    created with :meth:`new_context`, plus the registry of live pages. Pages
    opened by the remote side (popups, ``window.open``) are discovered through
    target events, initialised by their context and announced on it.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='forbid',
        revalidate_instances='never',
    )

    cdp_url: str | None = None

    _cdp_client_root: CDPClient | None = PrivateAttr(default=None)
    _scope: CancelScope = PrivateAttr(default_factory=lambda: CancelScope('browser'))
    _contexts: dict[str, BrowserContext] = PrivateAttr(default_factory=dict)
    # every context ever created, disposed ones included, so close() can stop their emitters
    _created_contexts: list[BrowserContext] = PrivateAttr(default_factory=list)
    _pages: dict[TargetID, Page] = PrivateAttr(default_factory=dict)
    # one attach per target, shared by new_page_in_context and target discovery
    _attach_tasks: dict[TargetID, asyncio.Task] = PrivateAttr(default_factory=dict)
    _cdp_event_tasks: set[asyncio.Task] = PrivateAttr(default_factory=set)

    @property
    def cdp_client(self) -> CDPClient:
        """Get the root CDP client.

        Raises:
            AssertionError: If the browser is not connected.
        """
        assert self._cdp_client_root is not None, 'CDP client not initialized - browser may not be connected yet'
        return self._cdp_client_root

    @property
    def scope(self) -> CancelScope:
        return self._scope

    @property
    def default_context(self) -> BrowserContext:
        return self._contexts['']

    def contexts(self) -> list[BrowserContext]:
        return list(self._contexts.values())

    def get_pages(self) -> list[Page]:
        """Every live page of every context, as of now."""
        return list(self._pages.values())

    async def connect(self, cdp_url: str | None = None, cdp_client: CDPClient | None = None) -> 'Browser':
        """Connect to a running chromium-based browser via CDP.

        Args:
            cdp_url: WebSocket URL, or an HTTP endpoint resolved through
                ``/json/version``. Defaults to ``CDPCONTEXT_CDP_URL``.
            cdp_client: An already started client to use instead of opening
                a new connection.

        Raises:
            RuntimeError: If no CDP URL is available.
        """
        if cdp_client is None:
            self.cdp_url = cdp_url or self.cdp_url or CONFIG.CDP_URL
            if not self.cdp_url:
                raise RuntimeError('Cannot setup CDP connection without CDP URL')

            ws_url = await resolve_ws_url(self.cdp_url)
            logger.debug(f'[Browser] Connecting to chromium-based browser via CDP: {ws_url}')
            cdp_client = CDPClient(ws_url)
            await cdp_client.start()

        self._cdp_client_root = cdp_client

        # the default context exists before any target is discovered
        self._contexts[''] = await BrowserContext.create(self, '', parent_scope=self._scope)
        self._created_contexts.append(self._contexts[''])

        cdp_client.register.Target.targetCreated(self._on_target_created)  # type: ignore[arg-type]
        cdp_client.register.Target.targetDestroyed(self._on_target_destroyed)  # type: ignore[arg-type]
        cdp_client.register.Fetch.requestPaused(self._on_request_paused)  # type: ignore[arg-type]
        cdp_client.register.Fetch.authRequired(self._on_auth_required)  # type: ignore[arg-type]

        await cdp_client.send.Target.setDiscoverTargets(params={'discover': True})
        logger.debug('[Browser] CDP client connected with target discovery enabled')
        return self

    async def new_context(self, options: BrowserContextOptions | Mapping[str, Any] | None = None) -> BrowserContext:
        """Create an isolated ("incognito") browser context."""
        if options is not None and not isinstance(options, BrowserContextOptions):
            try:
                options = BrowserContextOptions.model_validate(options)
            except ValidationError as e:
                raise UsageError(f'parsing browser context options: {e}', operation='newContext') from e

        try:
            result = await self.cdp_client.send.Target.createBrowserContext(params={'disposeOnDetach': True})
        except Exception as e:
            raise ProtocolError(f'creating browser context: {e}', operation='newContext') from e
        context_id = result['browserContextId']
        logger.debug(f'[Browser] new_context bctxid:{context_id!r}')

        try:
            context = await BrowserContext.create(self, context_id, options, parent_scope=self._scope)
        except Exception:
            try:
                await self.cdp_client.send.Target.disposeBrowserContext(params={'browserContextId': context_id})
            except Exception as dispose_error:
                logger.warning(f'[Browser] Failed to dispose half-created context {context_id!r}: {dispose_error}')
            raise

        self._contexts[context_id] = context
        self._created_contexts.append(context)
        return context

    async def new_page_in_context(self, context_id: str) -> Page:
        """Open a blank page in a context and return it once it is initialised."""
        params: dict[str, Any] = {'url': 'about:blank'}
        if context_id:
            params['browserContextId'] = context_id

        result = await self.cdp_client.send.Target.createTarget(params=params)
        return await self._get_or_attach_page(result['targetId'], context_id)

    async def dispose_context(self, context_id: str) -> None:
        """Dispose a non-default context and forget its pages."""
        await self.cdp_client.send.Target.disposeBrowserContext(params={'browserContextId': context_id})

        context = self._contexts.pop(context_id, None)
        for target_id, page in list(self._pages.items()):
            if page.context_id == context_id:
                del self._pages[target_id]
                page.mark_closed()
                if context is not None:
                    context.emit_page_closed(page)
        logger.debug(f'[Browser] Disposed browser context {context_id!r}')

    async def close(self) -> None:
        """Close every context and drop the CDP connection."""
        if self._scope.cancelled:
            return
        logger.debug('[Browser] Closing browser')

        cause = BrowserClosedError('browser closed')
        for context in self._contexts.values():
            context.mark_closed(cause)
        self._scope.cancel(cause)

        for task in list(self._cdp_event_tasks) + list(self._attach_tasks.values()):
            task.cancel()
        await asyncio.gather(*self._cdp_event_tasks, *self._attach_tasks.values(), return_exceptions=True)

        for context in self._created_contexts:
            await context.emitter.stop()

        if self._cdp_client_root is not None:
            await self._cdp_client_root.stop()
            self._cdp_client_root = None

    # ------------------------------------------------------------------
    # Page registry
    # ------------------------------------------------------------------

    def _context_for(self, browser_context_id: str | None) -> BrowserContext:
        # the remote default context reports its own id, which is unknown here
        return self._contexts.get(browser_context_id or '', self._contexts[''])

    def _page_for_session(self, session_id: SessionID | None) -> Page | None:
        return next((page for page in self._pages.values() if page.session_id == session_id), None)

    async def _get_or_attach_page(self, target_id: TargetID, browser_context_id: str | None, url: str = 'about:blank') -> Page:
        page = self._pages.get(target_id)
        if page is not None:
            return page

        task = self._attach_tasks.get(target_id)
        if task is None:
            task = asyncio.create_task(self._attach_page(target_id, browser_context_id, url))
            self._attach_tasks[target_id] = task
            task.add_done_callback(lambda _: self._attach_tasks.pop(target_id, None))
        return await asyncio.shield(task)

    async def _attach_page(self, target_id: TargetID, browser_context_id: str | None, url: str) -> Page:
        context = self._context_for(browser_context_id)
        page = await Page.for_target(self.cdp_client, target_id, context.id, context.timeout_settings, url)

        def register() -> None:
            self._pages[target_id] = page

        await context.initialize_page(page, on_ready=register)
        logger.debug(f'[Browser] Page {target_id[:8]}... ready in bctxid:{context.id!r}')
        context.emit_page(page)
        return page

    # ------------------------------------------------------------------
    # CDP event handlers
    # ------------------------------------------------------------------

    def _track(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._cdp_event_tasks.add(task)
        task.add_done_callback(lambda t: self._cdp_event_tasks.discard(t))

    def _on_target_created(self, event: dict[str, Any], session_id: SessionID | None) -> None:
        target_info = event['targetInfo']
        if target_info.get('type') != 'page':
            return
        self._track(
            self._discover_page(
                target_info['targetId'], target_info.get('browserContextId'), target_info.get('url', 'about:blank')
            )
        )

    async def _discover_page(self, target_id: TargetID, browser_context_id: str | None, url: str) -> None:
        try:
            await self._get_or_attach_page(target_id, browser_context_id, url)
        except Exception as e:
            logger.warning(f'[Browser] Failed to attach to discovered page {target_id[:8]}...: {type(e).__name__}: {e}')

    def _on_target_destroyed(self, event: dict[str, Any], session_id: SessionID | None) -> None:
        page = self._pages.pop(event['targetId'], None)
        if page is None:
            return
        page.mark_closed()
        context = self._contexts.get(page.context_id)
        if context is not None:
            context.emit_page_closed(page)
        logger.debug(f'[Browser] Page {page.target_id[:8]}... closed')

    def _on_request_paused(self, event: dict[str, Any], session_id: SessionID | None) -> None:
        page = self._page_for_session(session_id)
        if page is not None:
            self._track(self._run_page_handler(page.handle_request_paused(event), 'requestPaused'))

    def _on_auth_required(self, event: dict[str, Any], session_id: SessionID | None) -> None:
        page = self._page_for_session(session_id)
        if page is not None:
            self._track(self._run_page_handler(page.handle_auth_required(event), 'authRequired'))

    async def _run_page_handler(self, coro: Any, name: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.debug(f'[Browser] Error in {name} handler: {type(e).__name__}: {e}')
