"""Tests for cookie validation, conversion and URL scoping.

This module covers the Cookie model and the helpers that decide which stored
cookies a URL would receive:

    - Required fields before a cookie may be set
    - Conversion to and from CDP cookie dictionaries
    - Domain, path and secure matching
    - In-place, order preserving filtering and the "nothing matched" result
    - Rejection of malformed URLs
"""

from urllib.parse import urlsplit

import pytest

from cdpcontext.browser.cookies import Cookie, CookieSameSite, filter_cookies, parse_urls, should_keep_cookie
from cdpcontext.exceptions import InvalidCookieError, InvalidURLError, UsageError


class TestCookieValidation:
    """Tests for Cookie.validate_for_set."""

    def test_valid_with_url(self):
        """A name, value and URL are enough."""
        Cookie(name="a", value="1", url="https://example.com").validate_for_set()

    def test_valid_with_domain_and_path(self):
        """Without a URL, domain plus path is enough."""
        Cookie(name="a", value="1", domain="example.com", path="/").validate_for_set()

    @pytest.mark.parametrize(
        "fields",
        [
            {"value": "1", "url": "https://example.com"},
            {"name": "a", "url": "https://example.com"},
            {"name": "a", "value": "1", "domain": "example.com"},
            {"name": "a", "value": "1", "path": "/"},
        ],
    )
    def test_missing_fields(self, fields):
        """Missing name, value, or location is rejected."""
        cookie = Cookie(**fields)
        with pytest.raises(InvalidCookieError) as exc_info:
            cookie.validate_for_set()
        assert exc_info.value.cookie is cookie
        assert isinstance(exc_info.value, UsageError)


class TestCookieConversion:
    """Tests for the CDP conversions."""

    def test_camel_case_aliases(self):
        """Protocol field names are accepted."""
        cookie = Cookie.model_validate({"name": "a", "value": "1", "httpOnly": True, "sameSite": "Lax"})
        assert cookie.http_only is True
        assert cookie.same_site is CookieSameSite.LAX

    def test_to_protocol_session_cookie(self):
        """Zero expiry is left out so the browser keeps a session cookie."""
        param = Cookie(name="a", value="1", url="https://example.com").to_protocol()
        assert param == {
            "name": "a",
            "value": "1",
            "httpOnly": False,
            "secure": False,
            "url": "https://example.com",
        }

    def test_to_protocol_full(self):
        """Every set attribute is forwarded."""
        cookie = Cookie(
            name="a",
            value="1",
            domain=".example.com",
            path="/docs",
            secure=True,
            http_only=True,
            same_site=CookieSameSite.STRICT,
            expires=1_700_000_000,
        )
        param = cookie.to_protocol()
        assert param["domain"] == ".example.com"
        assert param["path"] == "/docs"
        assert param["sameSite"] == "Strict"
        assert param["expires"] == 1_700_000_000
        assert "url" not in param

    def test_from_protocol(self):
        """A CDP Network.Cookie converts with expiry truncated to seconds."""
        cookie = Cookie.from_protocol(
            {
                "name": "sid",
                "value": "xyz",
                "domain": "example.com",
                "path": "/",
                "expires": 1_700_000_000.75,
                "httpOnly": True,
                "secure": True,
                "sameSite": "None",
                "size": 9,
            }
        )
        assert cookie.expires == 1_700_000_000
        assert cookie.same_site is CookieSameSite.NONE
        assert cookie.http_only is True
        assert cookie.url is None

    def test_from_protocol_session_cookie(self):
        """The protocol reports session cookies with expires -1."""
        cookie = Cookie.from_protocol({"name": "a", "value": "1", "expires": -1})
        assert cookie.expires == -1
        assert "expires" not in cookie.to_protocol()


class TestShouldKeepCookie:
    """Tests for matching a single cookie against a URL."""

    def _keep(self, url, **fields):
        return should_keep_cookie(Cookie(name="a", value="1", **fields), urlsplit(url))

    def test_domain_matches_host_and_subdomains(self):
        """A bare domain behaves as if it had a leading dot."""
        assert self._keep("https://example.com/", domain="example.com")
        assert self._keep("https://www.example.com/", domain="example.com")
        assert self._keep("https://www.example.com/", domain=".example.com")

    def test_domain_suffix_without_dot_boundary(self):
        """'notexample.com' must not match 'example.com'."""
        assert not self._keep("https://notexample.com/", domain="example.com")

    def test_domain_case_insensitive(self):
        assert self._keep("https://WWW.Example.COM/", domain="example.com")

    def test_path_prefix(self):
        """The URL path must start with the cookie path."""
        assert self._keep("https://example.com/docs/page", domain="example.com", path="/docs")
        assert not self._keep("https://example.com/blog", domain="example.com", path="/docs")

    def test_empty_path_is_root(self):
        """Empty cookie and URL paths both mean '/'."""
        assert self._keep("https://example.com", domain="example.com", path="")
        assert self._keep("https://example.com", domain="example.com", path="/")

    def test_secure_over_http(self):
        """Secure cookies are not sent over http, except to localhost."""
        assert not self._keep("http://example.com/", domain="example.com", secure=True)
        assert self._keep("https://example.com/", domain="example.com", secure=True)
        assert self._keep("http://localhost:8080/", domain="localhost", secure=True)


class TestFilterCookies:
    """Tests for filtering stored cookies by URL."""

    def _cookies(self):
        return [
            Cookie(name="a", value="1", domain="foo.com", path="/"),
            Cookie(name="b", value="2", domain="bar.com", path="/"),
            Cookie(name="c", value="3", domain="foo.com", path="/"),
        ]

    def test_no_urls_returns_all(self):
        """Without URLs every cookie is returned."""
        cookies = self._cookies()
        assert filter_cookies(cookies, []) is cookies

    def test_keeps_matches_in_order(self):
        """Matching cookies keep their original relative order."""
        result = filter_cookies(self._cookies(), ["https://foo.com/"])
        assert [cookie.name for cookie in result] == ["a", "c"]

    def test_any_url_matches(self):
        """A cookie is kept if any of the URLs would receive it."""
        result = filter_cookies(self._cookies(), ["https://bar.com/", "https://foo.com/"])
        assert [cookie.name for cookie in result] == ["a", "b", "c"]

    def test_filters_in_place(self):
        """The input list is compacted rather than copied."""
        cookies = self._cookies()
        result = filter_cookies(cookies, ["https://bar.com/"])
        assert result is cookies
        assert [cookie.name for cookie in cookies] == ["b"]

    def test_nothing_matches(self):
        """No match yields None, not an empty list."""
        assert filter_cookies(self._cookies(), ["https://baz.com/"]) is None

    def test_malformed_url(self):
        """A malformed URL fails the whole call."""
        with pytest.raises(InvalidURLError) as exc_info:
            filter_cookies(self._cookies(), ["https://foo.com/", "not a url"])
        assert exc_info.value.url == "not a url"


class TestParseUrls:
    """Tests for URL parsing."""

    def test_strips_whitespace(self):
        (uri,) = parse_urls(["  https://example.com/path  "])
        assert uri.hostname == "example.com"
        assert uri.path == "/path"

    @pytest.mark.parametrize("url", ["example.com", "/relative", "https://", "http://[::1"])
    def test_rejects(self, url):
        with pytest.raises(InvalidURLError):
            parse_urls([url])
