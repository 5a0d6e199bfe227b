"""Cookie model and URL scoping.

Cookies follow the RFC 6265 attribute model. The scoping helpers decide which
stored cookies apply to a URL the way a browser would, so that
``BrowserContext.cookies(*urls)`` only reports cookies those URLs would send.

See: https://datatracker.ietf.org/doc/html/rfc6265
"""

from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any
from urllib.parse import SplitResult, urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cdpcontext.exceptions import InvalidCookieError, InvalidURLError


class CookieSameSite(str, Enum):
    """The cookie's 'SameSite' status.

    https://tools.ietf.org/html/draft-west-first-party-cookies
    """

    # Sent only in a first-party context
    STRICT = 'Strict'
    # Sent with same-site requests and cross-site top-level navigations
    LAX = 'Lax'
    # Sent in all contexts
    NONE = 'None'


class Cookie(BaseModel):
    """A browser cookie.

    Accepts both snake_case and the protocol's camelCase field names.
    ``expires`` is seconds since the UNIX epoch; zero means a session cookie.
    """

    model_config = ConfigDict(
        extra='ignore',
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )

    name: str = ''
    value: str = ''
    domain: str = ''
    path: str = ''
    http_only: bool = Field(
        default=False, serialization_alias='httpOnly', validation_alias=AliasChoices('httpOnly', 'http_only')
    )
    secure: bool = False
    same_site: CookieSameSite | None = Field(
        default=None, serialization_alias='sameSite', validation_alias=AliasChoices('sameSite', 'same_site')
    )
    url: str | None = None
    expires: int = 0

    def validate_for_set(self) -> None:
        """Check the fields the protocol needs before a cookie can be set."""
        if not self.name:
            raise InvalidCookieError(f'cookie name must be set: {self!r}', cookie=self)
        if not self.value:
            raise InvalidCookieError(f'cookie value must be set: {self!r}', cookie=self)
        # without a URL, the domain and path have to say where the cookie belongs
        if not self.url and (not self.domain or not self.path):
            raise InvalidCookieError(
                f'if cookie URL is not provided, both domain and path must be specified: {self!r}',
                cookie=self,
            )

    def to_protocol(self) -> dict[str, Any]:
        """Convert to a CDP ``Network.CookieParam``."""
        param: dict[str, Any] = {
            'name': self.name,
            'value': self.value,
            'httpOnly': self.http_only,
            'secure': self.secure,
        }
        if self.url:
            param['url'] = self.url
        if self.domain:
            param['domain'] = self.domain
        if self.path:
            param['path'] = self.path
        if self.same_site is not None:
            param['sameSite'] = self.same_site.value
        # session cookie unless an expiry is given
        if self.expires > 0:
            param['expires'] = self.expires
        return param

    @classmethod
    def from_protocol(cls, cookie: dict[str, Any]) -> 'Cookie':
        """Convert a CDP ``Network.Cookie``."""
        same_site = cookie.get('sameSite')
        return cls(
            name=cookie.get('name', ''),
            value=cookie.get('value', ''),
            domain=cookie.get('domain', ''),
            path=cookie.get('path', ''),
            expires=int(cookie.get('expires', 0) or 0),
            http_only=cookie.get('httpOnly', False),
            secure=cookie.get('secure', False),
            same_site=CookieSameSite(same_site) if same_site else None,
        )


def parse_urls(urls: Iterable[str]) -> list[SplitResult]:
    """Parse the given URLs.

    Every URL must be absolute and name a host. The first malformed URL fails
    the whole call.

    Raises:
        InvalidURLError: naming the offending URL.
    """
    parsed = []
    for url in urls:
        stripped = url.strip() if isinstance(url, str) else url
        try:
            uri = urlsplit(stripped)
            hostname = uri.hostname
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidURLError(f'{url!r}: {e}', url=url) from e
        if not uri.scheme or not hostname:
            raise InvalidURLError(f'{url!r}: invalid URI for request', url=url)
        parsed.append(uri)

    return parsed


def should_keep_cookie(cookie: Cookie, uri: SplitResult) -> bool:
    """Whether ``cookie`` would be sent to ``uri``."""
    hostname = (uri.hostname or '').lower()

    # A leading dot makes the cookie valid for the host and all its
    # subdomains: "example.com" behaves like ".example.com".
    domain = cookie.domain.lower()
    if not domain.startswith('.'):
        domain = '.' + domain
    # Dot-suffix match, so "notexample.com" does not match "example.com".
    if not ('.' + hostname).endswith(domain):
        return False

    # An empty or missing path is treated as "/".
    # See: https://datatracker.ietf.org/doc/html/rfc6265#section-5.1.4
    path = cookie.path or '/'
    if not (uri.path or '/').startswith(path):
        return False

    # Secure cookies are not sent over plain http, except to localhost.
    if cookie.secure and uri.scheme != 'https' and hostname != 'localhost':
        return False

    return True


def filter_cookies(cookies: list[Cookie], urls: Sequence[str]) -> list[Cookie] | None:
    """Filter ``cookies`` in place down to those that apply to any of ``urls``.

    With no URLs the list is returned unchanged. Kept cookies move to the
    front in their original order and the tail is truncated, so no second list
    is built. If nothing is kept ``None`` is returned rather than an empty
    list, so callers can tell "no cookies" apart.

    Raises:
        InvalidURLError: if any URL is malformed; nothing is filtered then.
    """
    if not urls or not cookies:
        return cookies

    uris = parse_urls(urls)

    # n is the slot for the next cookie to keep. Cookies that should not be
    # kept are overwritten by later ones that should.
    n = 0
    for cookie in cookies:
        if not any(should_keep_cookie(cookie, uri) for uri in uris):
            continue
        cookies[n] = cookie
        n += 1

    if n == 0:
        return None

    del cookies[n:]
    return cookies
