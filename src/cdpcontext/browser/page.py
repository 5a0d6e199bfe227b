"""A page (tab) of a browser context, driven through a flattened CDP session."""

import asyncio
import logging
from typing import Any

from cdp_use import CDPClient
from cdp_use.cdp.target import SessionID, TargetID
from pydantic import BaseModel, ConfigDict, PrivateAttr

from cdpcontext.browser.options import Geolocation, HTTPCredentials
from cdpcontext.browser.timeouts import TimeoutSettings

logger = logging.getLogger(__name__)

PAGE_DOMAINS = ['Page', 'Network']

# auth challenges remembered per page, oldest forgotten first
MAX_TRACKED_AUTH_ATTEMPTS = 1000


class Page(BaseModel):
    """A single page target attached over the browser's shared WebSocket.

    Pages receive state from their context (init scripts, geolocation, HTTP
    credentials, offline flag) and turn it into protocol commands on their
    own session.

    Attributes:
        cdp_client: Shared CDPClient of the browser.
        target_id: The CDP target id of the page.
        session_id: The flattened CDP session attached to the target.
        context_id: Identity of the browser context owning the page.

    Example:
        >>> page = await Page.for_target(cdp_client, target_id, context_id)
        >>> await page.update_offline(True)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, revalidate_instances='never')

    cdp_client: CDPClient
    target_id: TargetID
    session_id: SessionID
    context_id: str = ''
    url: str = 'about:blank'

    _timeout_settings: TimeoutSettings = PrivateAttr(default_factory=TimeoutSettings)
    _http_credentials: HTTPCredentials | None = PrivateAttr(default=None)
    # request ids already answered with credentials, in answer order
    _auth_attempts: dict[str, None] = PrivateAttr(default_factory=dict)
    _closed: bool = PrivateAttr(default=False)

    @classmethod
    async def for_target(
        cls,
        cdp_client: CDPClient,
        target_id: TargetID,
        context_id: str = '',
        timeout_settings: TimeoutSettings | None = None,
        url: str = 'about:blank',
    ) -> 'Page':
        """Attach to a page target and enable the domains pages need.

        Args:
            cdp_client: The shared CDP client (root WebSocket connection).
            target_id: Target id of the page.
            context_id: Owning browser context, ``''`` for the default one.
            timeout_settings: Settings of the owning context, used as the
                parent of the page's own settings.

        Raises:
            RuntimeError: If a domain fails to enable.
        """
        page = cls(
            cdp_client=cdp_client,
            target_id=target_id,
            session_id='connecting',
            context_id=context_id,
            url=url,
        )
        page._timeout_settings = TimeoutSettings(parent=timeout_settings)
        return await page.attach()

    async def attach(self) -> 'Page':
        result = await self.cdp_client.send.Target.attachToTarget(
            params={
                'targetId': self.target_id,
                'flatten': True,
            }
        )
        self.session_id = result['sessionId']

        enable_tasks = [getattr(self.cdp_client.send, domain).enable(session_id=self.session_id) for domain in PAGE_DOMAINS]
        results = await asyncio.gather(*enable_tasks, return_exceptions=True)
        if any(isinstance(result, Exception) for result in results):
            raise RuntimeError(f'Failed to enable requested CDP domain: {results}')

        logger.debug(f'[Page] Attached to target {self.target_id[:8]}... (session={self.session_id[:8]}...)')
        return self

    @property
    def timeout_settings(self) -> TimeoutSettings:
        return self._timeout_settings

    @property
    def closed(self) -> bool:
        return self._closed

    async def evaluate_on_new_document(self, source: str) -> None:
        """Run ``source`` in every document of this page before its own scripts."""
        await self.cdp_client.send.Page.addScriptToEvaluateOnNewDocument(
            params={'source': source}, session_id=self.session_id
        )

    async def update_geolocation(self, geolocation: Geolocation | None) -> None:
        if geolocation is None:
            await self.cdp_client.send.Emulation.clearGeolocationOverride(session_id=self.session_id)
            return
        await self.cdp_client.send.Emulation.setGeolocationOverride(
            params=geolocation.to_protocol(), session_id=self.session_id
        )

    async def update_http_credentials(self, credentials: HTTPCredentials | None) -> None:
        """Answer HTTP authentication challenges with ``credentials`` from now on.

        Requests are intercepted only while credentials are set.
        """
        self._http_credentials = credentials
        self._auth_attempts.clear()
        if credentials is None:
            await self.cdp_client.send.Fetch.disable(session_id=self.session_id)
            return
        await self.cdp_client.send.Fetch.enable(
            params={'handleAuthRequests': True, 'patterns': [{'urlPattern': '*'}]},
            session_id=self.session_id,
        )

    async def update_offline(self, offline: bool) -> None:
        await self.cdp_client.send.Network.emulateNetworkConditions(
            params={'offline': offline, 'latency': 0, 'downloadThroughput': -1, 'uploadThroughput': -1},
            session_id=self.session_id,
        )

    async def handle_request_paused(self, event: dict[str, Any]) -> None:
        # interception only exists for auth; let every paused request through
        await self.cdp_client.send.Fetch.continueRequest(
            params={'requestId': event['requestId']}, session_id=self.session_id
        )

    async def handle_auth_required(self, event: dict[str, Any]) -> None:
        """Answer an auth challenge. Credentials are offered once per request."""
        request_id = event['requestId']
        credentials = self._http_credentials

        if credentials is not None and request_id not in self._auth_attempts:
            self._auth_attempts[request_id] = None
            if len(self._auth_attempts) > MAX_TRACKED_AUTH_ATTEMPTS:
                del self._auth_attempts[next(iter(self._auth_attempts))]
            response = {
                'response': 'ProvideCredentials',
                'username': credentials.username,
                'password': credentials.password,
            }
        else:
            logger.debug(f'[Page] Cancelling auth challenge for request {request_id} on {self.target_id[:8]}...')
            # a cancelled challenge ends the request
            self._auth_attempts.pop(request_id, None)
            response = {'response': 'CancelAuth'}

        await self.cdp_client.send.Fetch.continueWithAuth(
            params={'requestId': request_id, 'authChallengeResponse': response},
            session_id=self.session_id,
        )

    async def close(self) -> None:
        if self._closed:
            return
        await self.cdp_client.send.Target.closeTarget(params={'targetId': self.target_id})

    def mark_closed(self) -> None:
        self._closed = True
