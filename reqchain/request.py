"""Request builder - accumulates request configuration and executes it.

A Request collects headers, proxy, TLS, timeout, redirect and cookie settings
through chainable setters, then runs each call through one pipeline:

    encode params -> build httpx.Request -> borrow a pooled client ->
    apply settings -> send -> release client -> buffer the Response

Usage:
    pool = ClientPool()
    with Request(pool).set_user_agent("crawler/1.0").set_timeout(10) as req:
        resp = req.get("https://example.com/search", {"q": "httpx"})
        data = resp.parse_json()

A Request is reusable across calls but must not be used from several threads
at once: ``url``, ``method`` and ``body`` are per-call state on the instance.
The ClientPool may be shared freely.
"""

from __future__ import annotations

import io
import logging
import os
import sys
import time
from http.cookiejar import CookieJar
from typing import Any, BinaryIO, Iterator
from urllib.parse import quote

import httpx

from reqchain.errors import TransportError, URLParseError
from reqchain.headers import HeaderStore
from reqchain.models import ClientConfig
from reqchain.params import encode_params
from reqchain.pool import ClientPool
from reqchain.redirects import (
    DEFAULT_REDIRECT_LIMIT,
    LimitRedirects,
    RedirectGuard,
    RedirectPolicy,
)
from reqchain.response import Response
from reqchain.transport import DialFunc, TransportConfigurator, fixed_address_dialer

logger = logging.getLogger(__name__)

# Methods whose params go into the query string instead of the body
QUERY_METHODS = frozenset({"GET", "HEAD"})

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# rw-r--r--, applied when download() creates the file
DOWNLOAD_FILE_MODE = 0o644

_STREAM_CHUNK_SIZE = 64 * 1024

_QUERY_SAFE = "!$%&'()*+,/:;=?@[]~"


class Request:
    """Chainable HTTP request builder over pooled httpx clients."""

    def __init__(self, pool: ClientPool | None = None) -> None:
        """Initialize the builder.

        Args:
            pool: Client pool to borrow clients from. Share one pool between
                  builders to reuse clients; without one the builder gets a
                  private single-client pool.
        """
        self.pool = pool if pool is not None else ClientPool(max_idle=1)
        self.host = ""
        self.headers = HeaderStore()
        self.timeout: float | None = None
        self.redirect_limit = DEFAULT_REDIRECT_LIMIT
        self.redirect_handler: RedirectPolicy | None = None
        self.cookie_jar: CookieJar | None = None
        self.transport = TransportConfigurator()

        # Per-call state, overwritten by execute()
        self.url = ""
        self.method = ""
        self.body: BinaryIO | None = None
        self._exec_time = 0.0

    @classmethod
    def from_config(cls, config: ClientConfig, pool: ClientPool | None = None) -> Request:
        """Build a Request preconfigured from a ClientConfig."""
        request = cls(pool)
        if config.host:
            request.set_host(config.host)
        if config.proxy:
            request.set_proxy(config.proxy)
        elif config.proxy_from_env:
            request.set_proxy_from_env()
        if config.dial_address:
            request.set_dial(fixed_address_dialer(config.dial_address))
        if config.headers:
            request.add_headers(config.headers)
        if config.user_agent:
            request.set_user_agent(config.user_agent)
        if config.referer:
            request.set_referer(config.referer)
        if config.charset:
            request.set_charset(config.charset)
        return (
            request.set_insecure_skip_verify(config.insecure_skip_verify)
            .set_redirect_limit(config.redirect_limit)
            .set_timeout(config.timeout)
            .set_dial_timeout(config.dial_timeout)
            .set_tls_timeout(config.tls_timeout)
            .set_response_header_timeout(config.response_header_timeout)
        )

    def __enter__(self) -> Request:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport this builder built, dropping its idle connections."""
        self.transport.close()

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def get(self, url: str, params: Any = None) -> Response:
        return self.execute("GET", url, params)

    def post(self, url: str, params: Any = None) -> Response:
        return self.execute("POST", url, params)

    def post_form(self, url: str, params: Any = None) -> Response:
        """POST with Content-Type application/x-www-form-urlencoded.

        The Content-Type header stays set on the builder afterwards.
        """
        self.headers.set("Content-Type", FORM_CONTENT_TYPE)
        return self.execute("POST", url, params)

    def put(self, url: str, params: Any = None) -> Response:
        return self.execute("PUT", url, params)

    def head(self, url: str, params: Any = None) -> Response:
        return self.execute("HEAD", url, params)

    def options(self, url: str, params: Any = None) -> Response:
        return self.execute("OPTIONS", url, params)

    def delete(self, url: str, params: Any = None) -> Response:
        return self.execute("DELETE", url, params)

    def download(self, url: str, to_file: str | os.PathLike[str]) -> None:
        """GET ``url`` and write the raw body to ``to_file``.

        A new file is created with mode 0o644 (before umask); an existing
        file is truncated and keeps its mode.
        """
        response = self.execute("GET", url)
        fd = os.open(to_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DOWNLOAD_FILE_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(response.body)

    def execute(self, method: str, url: str, params: Any = None) -> Response:
        """Send one request and return the buffered response.

        Args:
            method: HTTP method, any case.
            url: Absolute target URL.
            params: Body or query parameters; see params.encode_params for
                    accepted shapes. For GET and HEAD they replace the URL's
                    query string. Unsupported shapes are sent as no body.

        Raises:
            URLParseError: The URL is malformed.
            TooManyRedirects: The redirect policy stopped the call.
            TransportError: Connect, TLS, timeout or protocol failure.
            BodyReadError: The response body could not be read.
        """
        self.url = url
        self.method = method.upper()
        self.body = encode_params(params)
        return self._transmit()

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_host(self, host: str) -> Request:
        """Send ``host`` as the Host header instead of the URL's host."""
        self.host = host
        return self

    def get_host(self) -> str:
        return self.host

    def set_proxy(self, proxy: str) -> Request:
        """Route requests through ``proxy``, e.g. "http://127.0.0.1:8081".

        Raises:
            ProxyConfigError: The proxy URL is malformed.
        """
        self.transport.set_proxy(proxy)
        return self

    def set_proxy_from_env(self) -> Request:
        """Route requests through the proxy named by HTTPS_PROXY/HTTP_PROXY/ALL_PROXY."""
        self.transport.proxy_from_environment()
        return self

    def set_redirect_limit(self, limit: int) -> Request:
        if limit < 0:
            raise ValueError(f"Redirect limit must be >= 0, got {limit}")
        self.redirect_limit = limit
        return self

    def set_redirect_handler(self, handler: RedirectPolicy | None) -> Request:
        """Replace the redirect-limit policy with ``handler`` (None restores it)."""
        self.redirect_handler = handler
        return self

    def set_insecure_skip_verify(self, skip: bool) -> Request:
        self.transport.set_insecure_skip_verify(skip)
        return self

    def set_cookie_jar(self, jar: CookieJar | None) -> Request:
        """Persist cookies in ``jar`` across calls. The jar is shared, not copied."""
        self.cookie_jar = jar
        return self

    def set_dial(self, dial: DialFunc | None) -> Request:
        """Open connections with ``dial`` (see transport.fixed_address_dialer)."""
        self.transport.set_dial(dial)
        return self

    def set_transport(self, transport: httpx.BaseTransport | None) -> Request:
        """Send through ``transport`` instead of one built from the settings."""
        self.transport.set_transport(transport)
        return self

    def set_referer(self, referer: str) -> Request:
        return self.set_header("Referer", referer)

    def set_charset(self, charset: str) -> Request:
        return self.set_header("Accept-Charset", charset)

    def set_user_agent(self, user_agent: str) -> Request:
        return self.set_header("User-Agent", user_agent)

    def set_header(self, key: str, value: str) -> Request:
        self.headers.set(key, value)
        return self

    def get_header(self, key: str) -> str:
        return self.headers.get(key)

    def set_headers(self, headers: Any) -> Request:
        """Replace all headers with ``headers``."""
        self.headers = HeaderStore(headers)
        return self

    def add_headers(self, headers: Any) -> Request:
        """Merge ``headers`` in; each incoming key replaces that key's values."""
        self.headers.add(headers)
        return self

    def set_timeout(self, timeout: float | None) -> Request:
        """Bound every phase of a call that has no more specific timeout.

        Each phase (connect, each write, each read, pool wait) is bounded on
        its own; this is not an overall deadline. A body that keeps trickling
        bytes faster than the timeout is never cut off.
        """
        self.timeout = timeout
        return self

    def set_dial_timeout(self, timeout: float | None) -> Request:
        self.transport.set_dial_timeout(timeout)
        return self

    def set_tls_timeout(self, timeout: float | None) -> Request:
        self.transport.set_tls_timeout(timeout)
        return self

    def set_response_header_timeout(self, timeout: float | None) -> Request:
        self.transport.set_response_header_timeout(timeout)
        return self

    @property
    def exec_time(self) -> float:
        """Seconds the last call spent in dispatch, including failed ones."""
        return self._exec_time

    def reset(self) -> Request:
        """Restore transport, header and redirect settings to their defaults.

        Timeouts, the Host override and the cookie jar are kept.
        """
        old = self.transport
        self.transport = TransportConfigurator(
            dial_timeout=old.dial_timeout,
            tls_timeout=old.tls_timeout,
            response_header_timeout=old.response_header_timeout,
        )
        old.close()
        self.headers = HeaderStore()
        self.redirect_handler = None
        self.redirect_limit = DEFAULT_REDIRECT_LIMIT
        return self

    def redirect_policy(self) -> RedirectPolicy:
        """The policy applied to the next call: the handler, else the limit."""
        if self.redirect_handler is not None:
            return self.redirect_handler
        return LimitRedirects(self.redirect_limit)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _transmit(self) -> Response:
        url: str | httpx.URL = self.url
        content: bytes | Iterator[bytes] | None = None

        if self.body is not None:
            if self.method in QUERY_METHODS:
                url = _replace_query(self.url, self.body.read())
                self.body = None
            else:
                content = _request_content(self.body)

        try:
            request = httpx.Request(
                self.method, url, headers=self.headers.to_httpx(), content=content
            )
        except httpx.InvalidURL as e:
            raise URLParseError(f"Invalid URL '{self.url}': {e}") from e

        if self.host:
            request.headers["Host"] = self.host

        logger.debug("%s %s", request.method, request.url)
        start = time.perf_counter()
        client = self.pool.acquire()
        try:
            self._configure(client, request)
            http_response = client.send(request, stream=True, follow_redirects=True)
        except httpx.InvalidURL as e:
            raise URLParseError(f"Invalid URL '{self.url}': {e}") from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise TransportError(f"Request error: {e}") from e
        finally:
            self._exec_time = time.perf_counter() - start
            self.pool.release(client)

        response = Response.from_httpx(http_response, elapsed_ms=self._exec_time * 1000)
        logger.debug(
            "%s %s -> %d (%.1f ms)",
            request.method,
            request.url,
            response.status_code,
            response.elapsed_ms,
        )
        return response

    def _configure(self, client: httpx.Client, request: httpx.Request) -> None:
        """Apply every per-call setting; pooled clients keep the last borrower's."""
        # httpx.Client has no public transport setter
        client._transport = self.transport.build()
        client.timeout = self.transport.timeouts(self.timeout)
        # Only the redirect policy decides when to stop
        client.max_redirects = sys.maxsize
        client.event_hooks = {"request": [RedirectGuard(self.redirect_policy())], "response": []}
        if self.cookie_jar is not None:
            client.cookies = self.cookie_jar
            client.cookies.set_cookie_header(request)
        else:
            client.cookies = httpx.Cookies()


def _replace_query(url: str, query: str | bytes) -> httpx.URL:
    """Return ``url`` with its query string replaced (not merged) by ``query``."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise URLParseError(f"Invalid URL '{url}': {e}") from e
    # Callers pre-escape their pairs; only bytes a URL cannot carry get quoted.
    # Raw bytes are escaped as is, so non-UTF-8 input never fails here.
    return parsed.copy_with(query=quote(query, safe=_QUERY_SAFE).encode("ascii"))


def _request_content(stream: BinaryIO) -> bytes | Iterator[bytes]:
    """Body content for httpx: buffered bytes get a Content-Length, other streams go chunked."""
    if isinstance(stream, io.BytesIO):
        return stream.read()
    return _iter_stream(stream)


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = stream.read(_STREAM_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
