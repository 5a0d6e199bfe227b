"""Browser context: an isolated browser session and the state shared by its pages.

A newly connected browser has a default context (identity ``''``). Any
context created aside from it is an "incognito" context that does not store
data on disk. Every context owns its init scripts and option state
(geolocation, HTTP credentials, offline flag) and pushes changes to all of its
live pages; cookies and permissions live in the remote browser and are
queried and mutated through protocol commands scoped to the context id.

Example:
    >>> context = await browser.new_context(BrowserContextOptions(permissions=['geolocation']))
    >>> await context.add_init_script('window.answer = 42')
    >>> page_waiter = asyncio.create_task(context.wait_for_event('page', timeout=5_000))
    >>> page = await context.new_page()
    >>> assert await page_waiter is page
    >>> await context.close()
"""

import asyncio
import logging
import warnings
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from cdpcontext.browser.cookies import Cookie, filter_cookies, parse_urls
from cdpcontext.browser.emitter import CancelScope, EventEmitter
from cdpcontext.browser.events import (
    EVENT_PAGE,
    WAIT_FOR_EVENT_TYPES,
    BrowserContextClosedEvent,
    PageClosedEvent,
    PageCreatedEvent,
)
from cdpcontext.browser.options import (
    BrowserContextOptions,
    Geolocation,
    GrantPermissionsOptions,
    HTTPCredentials,
)
from cdpcontext.browser.permissions import translate_permissions
from cdpcontext.browser.scripts import InitScript, resolve_init_script
from cdpcontext.browser.timeouts import TimeoutSettings
from cdpcontext.browser.waiter import EventWaiter, Predicate
from cdpcontext.exceptions import (
    BrowserContextClosedError,
    BrowserContextError,
    FatalUsageError,
    InvalidCookieError,
    NotImplementedFeatureError,
    ProtocolError,
    UsageError,
)

logger = logging.getLogger(__name__)

# deprecated operations already reported in this process
_shown_deprecations: set[str] = set()


def _warn_deprecated(name: str, message: str) -> None:
    if name in _shown_deprecations:
        return
    _shown_deprecations.add(name)
    logger.warning(f'[BrowserContext] {message}')
    warnings.warn(message, DeprecationWarning, stacklevel=3)


class BrowserContext(BaseModel):
    """State holder and scripting surface of a single browser context.

    Attributes:
        browser: The owning Browser. Provides ``cdp_client``, ``get_pages()``,
            ``new_page_in_context(context_id)`` and ``dispose_context(context_id)``.
        id: CDP browser context id. Empty for the default context.
        options: Current option state. Mutated only by this context.
        emitter: Event emitter for page lifecycle events of this context.
        scope: Lifetime of the context. Cancelled when the context is closed
            or the browser goes away; outstanding waits resolve then.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='forbid',
        validate_assignment=False,
        revalidate_instances='never',
    )

    browser: Any = Field()
    id: str = ''
    options: BrowserContextOptions = Field(default_factory=BrowserContextOptions)
    emitter: EventEmitter = Field(default_factory=EventEmitter)
    scope: CancelScope = Field(default_factory=lambda: CancelScope('browser-context'))

    _timeout_settings: TimeoutSettings = PrivateAttr(default_factory=TimeoutSettings)
    _init_scripts: list[InitScript] = PrivateAttr(default_factory=list)
    # serializes mutations of the init scripts and option state
    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    def model_post_init(self, __context) -> None:
        if self.options.timeout is not None:
            self._timeout_settings.set_default_timeout(self.options.timeout)
        if self.options.navigation_timeout is not None:
            self._timeout_settings.set_default_navigation_timeout(self.options.navigation_timeout)

    @classmethod
    async def create(
        cls,
        browser: Any,
        context_id: str = '',
        options: BrowserContextOptions | None = None,
        parent_scope: CancelScope | None = None,
        emitter: EventEmitter | None = None,
    ) -> 'BrowserContext':
        """Create a context and grant the permissions it was configured with.

        Args:
            browser: The owning Browser.
            context_id: CDP browser context id, ``''`` for the default context.
            options: Initial option state.
            parent_scope: Scope of the owning browser. The context's scope is
                derived from it.
            emitter: Event emitter to use, a fresh one by default.
        """
        name = f'browser-context:{context_id or "default"}'
        scope = parent_scope.child(name) if parent_scope is not None else CancelScope(name)
        context = cls(
            browser=browser,
            id=context_id,
            options=options or BrowserContextOptions(),
            emitter=emitter or EventEmitter(),
            scope=scope,
        )

        if context.options.permissions:
            try:
                await context.grant_permissions(context.options.permissions)
            except Exception:
                scope.close()
                await context.emitter.stop()
                raise

        return context

    @property
    def is_default(self) -> bool:
        return not self.id

    @property
    def init_scripts(self) -> tuple[str, ...]:
        """Sources of the init scripts, in the order they run on new pages."""
        return tuple(script.source for script in self._init_scripts)

    @property
    def timeout_settings(self) -> TimeoutSettings:
        return self._timeout_settings

    # ------------------------------------------------------------------
    # Init scripts and page setup
    # ------------------------------------------------------------------

    async def add_init_script(self, script: Any, arg: Any = None) -> None:
        """Add a script that runs on every page of this context before page scripts.

        Args:
            script: A source string, ``{'content': source}``, or a
                :class:`~cdpcontext.browser.scripts.JSFunction`.
            arg: JSON serializable argument forwarded to a function script.
        """
        logger.debug(f'[BrowserContext] add_init_script bctxid:{self.id!r}')

        try:
            init_script = resolve_init_script(script, arg)
        except UsageError as e:
            raise self._annotate(e, 'addInitScript')

        async with self._lock:
            self._init_scripts.append(init_script)
            await self._for_each_page(
                'adding init script to browser context',
                lambda page: page.evaluate_on_new_document(init_script.source),
            )

    async def initialize_page(self, page: Any, on_ready: Callable[[], None] | None = None) -> None:
        """Bring a freshly created page in line with the context state.

        Applies every init script in insertion order, then the current
        geolocation, HTTP credentials and offline flag. ``on_ready`` runs
        before the state lock is released, so a page registered there can't
        miss or double-apply a concurrent change.
        """
        logger.debug(f'[BrowserContext] initialize_page bctxid:{self.id!r} ptid:{getattr(page, "target_id", None)}')

        async with self._lock:
            try:
                for script in self._init_scripts:
                    await page.evaluate_on_new_document(script.source)
                if self.options.geolocation is not None:
                    await page.update_geolocation(self.options.geolocation)
                if self.options.http_credentials is not None:
                    await page.update_http_credentials(self.options.http_credentials)
                if self.options.offline:
                    await page.update_offline(True)
            except BrowserContextError:
                raise
            except Exception as e:
                raise ProtocolError(
                    f'initializing page: {e}', context_id=self.id, operation='initializePage'
                ) from e

            if on_ready is not None:
                on_ready()

    def emit_page(self, page: Any) -> None:
        """Announce a new page of this context to listeners."""
        self.emitter.emit(PageCreatedEvent(context_id=self.id, target_id=page.target_id, page=page))

    def emit_page_closed(self, page: Any) -> None:
        """Announce that a page of this context went away."""
        self.emitter.emit(PageClosedEvent(context_id=self.id, target_id=page.target_id, page=page))

    # ------------------------------------------------------------------
    # Pages and lifecycle
    # ------------------------------------------------------------------

    async def new_page(self) -> Any:
        """Create a new page inside this browser context."""
        logger.debug(f'[BrowserContext] new_page bctxid:{self.id!r}')

        try:
            page = await self.browser.new_page_in_context(self.id)
        except Exception as e:
            raise ProtocolError(
                f'creating new page in browser context: {e}', context_id=self.id, operation='newPage'
            ) from e
        if page is None:
            raise ProtocolError(
                'creating new page in browser context: no page returned', context_id=self.id, operation='newPage'
            )

        logger.debug(f'[BrowserContext] new_page:return bctxid:{self.id!r} ptid:{page.target_id}')
        return page

    def pages(self) -> list[Any]:
        """Live pages of this browser context, as of now."""
        return [page for page in self.browser.get_pages() if page.context_id == self.id]

    async def close(self) -> None:
        """Shut down the browser context and every page in it.

        Raises:
            FatalUsageError: for the default context, whose lifetime belongs
                to the browser.
        """
        logger.debug(f'[BrowserContext] close bctxid:{self.id!r}')

        if self.is_default:
            raise FatalUsageError("default browser context can't be closed", context_id=self.id, operation='close')

        try:
            await self.browser.dispose_context(self.id)
        except Exception as e:
            raise ProtocolError(f'disposing browser context: {e}', context_id=self.id, operation='close') from e

        self.mark_closed(BrowserContextClosedError('browser context closed', context_id=self.id))
        await self.emitter.stop()

    def mark_closed(self, cause: BaseException | None = None) -> None:
        """Cancel the context scope, unblocking outstanding waits with ``cause``."""
        if self.scope.cancelled:
            return
        self.emitter.emit(BrowserContextClosedEvent(context_id=self.id))
        self.scope.cancel(cause)

    # ------------------------------------------------------------------
    # Timeouts
    # ------------------------------------------------------------------

    def set_default_navigation_timeout(self, timeout: float) -> None:
        """Set the default navigation timeout in milliseconds."""
        logger.debug(f'[BrowserContext] set_default_navigation_timeout bctxid:{self.id!r} timeout:{timeout}')
        self._timeout_settings.set_default_navigation_timeout(timeout)

    def set_default_timeout(self, timeout: float) -> None:
        """Set the default maximum timeout in milliseconds."""
        logger.debug(f'[BrowserContext] set_default_timeout bctxid:{self.id!r} timeout:{timeout}')
        self._timeout_settings.set_default_timeout(timeout)

    def timeout(self) -> float:
        """The default timeout or the one set by the user, in milliseconds."""
        return self._timeout_settings.timeout()

    def navigation_timeout(self) -> float:
        return self._timeout_settings.navigation_timeout()

    # ------------------------------------------------------------------
    # Options pushed to pages
    # ------------------------------------------------------------------

    async def set_geolocation(self, geolocation: Any) -> None:
        """Override the geolocation of every page. ``None`` clears the override."""
        logger.debug(f'[BrowserContext] set_geolocation bctxid:{self.id!r}')

        try:
            parsed = Geolocation.parse(geolocation)
        except UsageError as e:
            raise self._annotate(e, 'setGeolocation')

        async with self._lock:
            self.options.geolocation = parsed
            await self._for_each_page('updating geolocation', lambda page: page.update_geolocation(parsed))

    async def set_http_credentials(self, http_credentials: Any) -> None:
        """Set username/password credentials to use for HTTP authentication.

        Deprecated: create a new BrowserContext with ``http_credentials`` instead.
        See for details:
        - https://github.com/microsoft/playwright/issues/2196#issuecomment-627134837
        - https://github.com/microsoft/playwright/pull/2763
        """
        _warn_deprecated(
            'set_http_credentials',
            'set_http_credentials is deprecated. Create a new BrowserContext with http_credentials instead.',
        )
        logger.debug(f'[BrowserContext] set_http_credentials bctxid:{self.id!r}')

        try:
            parsed = HTTPCredentials.parse(http_credentials)
        except UsageError as e:
            raise self._annotate(e, 'setHTTPCredentials')

        async with self._lock:
            self.options.http_credentials = parsed
            await self._for_each_page(
                'updating HTTP credentials', lambda page: page.update_http_credentials(parsed)
            )

    async def set_offline(self, offline: bool) -> None:
        """Toggle the network connectivity of every page."""
        logger.debug(f'[BrowserContext] set_offline bctxid:{self.id!r} offline:{offline}')

        async with self._lock:
            self.options.offline = offline
            await self._for_each_page('updating offline mode', lambda page: page.update_offline(offline))

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def grant_permissions(
        self,
        permissions: Sequence[str],
        options: GrantPermissionsOptions | Mapping[str, Any] | None = None,
    ) -> None:
        """Grant the given permissions; all others are denied.

        Either every name is valid and one protocol command grants them all,
        or nothing is granted.
        """
        logger.debug(f'[BrowserContext] grant_permissions bctxid:{self.id!r} permissions:{permissions}')

        if isinstance(permissions, str):
            raise UsageError(
                'permissions must be a list of names', context_id=self.id, operation='grantPermissions'
            )
        try:
            grant_options = (
                options
                if isinstance(options, GrantPermissionsOptions)
                else GrantPermissionsOptions.model_validate(options or {})
            )
        except ValidationError as e:
            raise UsageError(
                f'parsing grant permissions options: {e}', context_id=self.id, operation='grantPermissions'
            ) from e
        try:
            protocol_permissions = translate_permissions(permissions)
        except UsageError as e:
            raise self._annotate(e, 'grantPermissions')

        params: dict[str, Any] = {'permissions': protocol_permissions, **self._context_params()}
        if grant_options.origin:
            params['origin'] = grant_options.origin

        try:
            await self.browser.cdp_client.send.Browser.grantPermissions(params=params)
        except Exception as e:
            raise ProtocolError(
                f'granting browser permissions: {e}', context_id=self.id, operation='grantPermissions'
            ) from e

    async def clear_permissions(self) -> None:
        """Clear any permission overrides."""
        logger.debug(f'[BrowserContext] clear_permissions bctxid:{self.id!r}')

        try:
            await self.browser.cdp_client.send.Browser.resetPermissions(params=self._context_params())
        except Exception as e:
            raise ProtocolError(
                f'clearing permissions: {e}', context_id=self.id, operation='clearPermissions'
            ) from e

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    async def add_cookies(self, cookies: Sequence[Cookie | Mapping[str, Any]]) -> None:
        """Add cookies into this browser context. Every page of the context sees them."""
        logger.debug(f'[BrowserContext] add_cookies bctxid:{self.id!r}')

        if not cookies:
            raise InvalidCookieError('no cookies provided', context_id=self.id, operation='addCookies')

        cookies_to_set = []
        for item in cookies:
            try:
                cookie = item if isinstance(item, Cookie) else Cookie.model_validate(item)
                cookie.validate_for_set()
            except ValidationError as e:
                raise InvalidCookieError(
                    f'parsing cookie: {e}', cookie=item, context_id=self.id, operation='addCookies'
                ) from e
            except UsageError as e:
                raise self._annotate(e, 'addCookies')
            cookies_to_set.append(cookie.to_protocol())

        try:
            await self.browser.cdp_client.send.Storage.setCookies(
                params={'cookies': cookies_to_set, **self._context_params()}
            )
        except Exception as e:
            raise ProtocolError(f'cannot set cookies: {e}', context_id=self.id, operation='addCookies') from e

    async def clear_cookies(self) -> None:
        """Remove every cookie of this browser context."""
        logger.debug(f'[BrowserContext] clear_cookies bctxid:{self.id!r}')

        try:
            await self.browser.cdp_client.send.Storage.clearCookies(params=self._context_params())
        except Exception as e:
            raise ProtocolError(f'clearing cookies: {e}', context_id=self.id, operation='clearCookies') from e

    async def cookies(self, *urls: str) -> list[Cookie] | None:
        """Return the cookies of this context, limited to ``urls`` when given.

        Some cookies are added with :meth:`add_cookies`, others come from the
        pages themselves (the Set-Cookie header or ``document.cookie``).

        Returns:
            The cookies, or ``None`` when there are none.
        """
        logger.debug(f'[BrowserContext] cookies bctxid:{self.id!r} urls:{list(urls)}')

        # malformed URLs fail the call before anything is sent
        try:
            parse_urls(urls)
        except UsageError as e:
            raise self._annotate(e, 'cookies')

        try:
            result = await self.browser.cdp_client.send.Storage.getCookies(params=self._context_params())
        except Exception as e:
            raise ProtocolError(f'retrieving cookies: {e}', context_id=self.id, operation='cookies') from e

        network_cookies = result.get('cookies', [])
        if not network_cookies:
            return None

        cookies = [Cookie.from_protocol(cookie) for cookie in network_cookies]
        return filter_cookies(cookies, urls) or None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def wait_for_event(
        self,
        event: str,
        predicate: Predicate | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Wait for an event of this context and return its payload.

        Args:
            event: Event kind. Only ``'page'`` is supported.
            predicate: Optional synchronous test over the new page.
            timeout: Milliseconds to wait. Defaults to the context timeout;
                ``0`` waits without a deadline.

        Raises:
            UsageError: for an unsupported event kind.
            WaitTimeoutError: when no accepted event arrives in time.
            WaitCancelledError: when the context or browser closes first.
            PredicateError: when the predicate raises.
        """
        logger.debug(f'[BrowserContext] wait_for_event bctxid:{self.id!r} event:{event!r}')

        event_type = WAIT_FOR_EVENT_TYPES.get(event)
        if event_type is None:
            raise UsageError(
                f'incorrect event {event!r}, {EVENT_PAGE!r} is the only event supported',
                context_id=self.id,
                operation='waitForEvent',
            )

        timeout = self._timeout_settings.timeout(timeout)
        waiter = EventWaiter(self.emitter, name=event, context_id=self.id)
        return await waiter.wait(self.scope, event_type, predicate, timeout if timeout > 0 else None)

    # ------------------------------------------------------------------
    # Not implemented
    # ------------------------------------------------------------------

    def expose_binding(self, name: str, callback: Callable[..., Any], options: Any = None) -> None:
        self._not_implemented('BrowserContext.exposeBinding(name, callback, opts)')

    def expose_function(self, name: str, callback: Callable[..., Any]) -> None:
        self._not_implemented('BrowserContext.exposeFunction(name, callback)')

    def new_cdp_session(self) -> Any:
        self._not_implemented('BrowserContext.newCDPSession()')

    def route(self, url: Any, handler: Callable[..., Any]) -> None:
        self._not_implemented('BrowserContext.route(url, handler)')

    def unroute(self, url: Any, handler: Callable[..., Any] | None = None) -> None:
        self._not_implemented('BrowserContext.unroute(url, handler)')

    def storage_state(self, options: Any = None) -> Any:
        self._not_implemented('BrowserContext.storageState(opts)')

    def set_extra_http_headers(self, headers: Mapping[str, str]) -> None:
        self._not_implemented('BrowserContext.setExtraHTTPHeaders(headers)')

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _context_params(self) -> dict[str, str]:
        # the default context is addressed by leaving the id out
        return {'browserContextId': self.id} if self.id else {}

    def _annotate(self, error: BrowserContextError, operation: str) -> BrowserContextError:
        error.context_id = self.id
        error.operation = error.operation or operation
        return error

    def _not_implemented(self, signature: str) -> None:
        raise NotImplementedFeatureError(f'{signature} has not been implemented yet', context_id=self.id)

    async def _for_each_page(self, operation: str, apply: Callable[[Any], Awaitable[Any]]) -> None:
        """Apply a change to every live page, then report all failures at once."""
        pages = self.pages()
        if not pages:
            return

        results = await asyncio.gather(*(apply(page) for page in pages), return_exceptions=True)

        failures = []
        for page, result in zip(pages, results):
            if isinstance(result, Exception):
                failures.append((page, result))
            elif isinstance(result, BaseException):
                raise result

        if failures:
            failed = ', '.join(f'{page.target_id}: {error}' for page, error in failures)
            raise ProtocolError(
                f'{operation} in target ID {failed}',
                context_id=self.id,
                details={'failed_targets': [page.target_id for page, _ in failures]},
            ) from failures[0][1]
