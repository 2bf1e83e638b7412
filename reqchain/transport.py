"""Transport configuration - proxy, dialing, TLS and timeout settings.

A TransportConfigurator turns its settings into an httpx transport and keeps
that transport for reuse (and its idle keep-alive connections) until one of
the settings changes.
"""

from __future__ import annotations

import logging
import socket
import urllib.request
from typing import Any, Callable, Optional

import httpcore
import httpx

from reqchain.errors import ProxyConfigError

logger = logging.getLogger(__name__)

# dial(host, port, timeout) -> open stream to whatever should serve host:port
DialFunc = Callable[[str, int, Optional[float]], httpcore.NetworkStream]

PROXY_SCHEMES = ("http", "https", "socks5", "socks5h")

_KEEPALIVE_OPTION = (socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)


class _DialBackend(httpcore.NetworkBackend):
    """httpcore network backend that opens TCP connections via a dial function.

    With no dial function it falls back to httpcore's own sync backend, still
    applying the dial timeout and TCP keep-alive.
    """

    def __init__(self, dial: DialFunc | None, dial_timeout: float | None) -> None:
        self._dial = dial
        self._dial_timeout = dial_timeout
        self._default = httpcore.SyncBackend()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        if self._dial_timeout:
            timeout = self._dial_timeout
        if self._dial is not None:
            return self._dial(host, port, timeout)

        options = list(socket_options or [])
        if self._dial_timeout:
            options.append(_KEEPALIVE_OPTION)
        return self._default.connect_tcp(
            host,
            port,
            timeout=timeout,
            local_address=local_address,
            socket_options=options,
        )

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        return self._default.connect_unix_socket(
            path, timeout=timeout, socket_options=socket_options
        )

    def sleep(self, seconds: float) -> None:
        self._default.sleep(seconds)


def fixed_address_dialer(address: str) -> DialFunc:
    """Build a dial function that always connects to ``address``.

    The request URL's host is still used for the Host header and TLS SNI, so
    this pins a request to one backend (e.g. a specific node behind a CDN).

    Args:
        address: "ip:port", e.g. "127.0.0.1:443" or "[::1]:8080".

    Raises:
        ValueError: If address has no numeric port.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Dial address must be host:port, got {address!r}")
    host = host.strip("[]")
    backend = httpcore.SyncBackend()

    def dial(_host: str, _port: int, timeout: float | None) -> httpcore.NetworkStream:
        return backend.connect_tcp(host, int(port), timeout=timeout)

    return dial


def validate_proxy_url(proxy: str) -> httpx.URL:
    """Parse a proxy URL, rejecting anything httpx could not route through.

    Raises:
        ProxyConfigError: If the URL is malformed, lacks a host, or uses an
            unsupported scheme.
    """
    try:
        url = httpx.URL(proxy)
    except (httpx.InvalidURL, TypeError) as e:
        raise ProxyConfigError(f"Invalid proxy URL '{proxy}': {e}") from e

    if url.scheme not in PROXY_SCHEMES:
        raise ProxyConfigError(
            f"Invalid proxy URL '{proxy}': scheme must be one of {', '.join(PROXY_SCHEMES)}"
        )
    if not url.host:
        raise ProxyConfigError(f"Invalid proxy URL '{proxy}': missing host")
    return url


class TransportConfigurator:
    """Holds transport settings and builds the httpx transport from them.

    Settings:
        proxy: proxy URL, or None for a direct connection.
        dial: custom connection function (see DialFunc), or None.
        insecure_skip_verify: disable TLS certificate verification.
        dial_timeout: bound on the TCP connect; also enables TCP keep-alive.
        tls_timeout: bound on the TLS handshake.
        response_header_timeout: bound on each read while waiting for data.

    Timeouts are float seconds; 0 or None means no bound.
    """

    def __init__(
        self,
        dial_timeout: float | None = None,
        tls_timeout: float | None = None,
        response_header_timeout: float | None = None,
    ) -> None:
        self.proxy: httpx.URL | None = None
        self.dial: DialFunc | None = None
        self.insecure_skip_verify = False
        self.dial_timeout = dial_timeout
        self.tls_timeout = tls_timeout
        self.response_header_timeout = response_header_timeout
        self._override: httpx.BaseTransport | None = None
        self._transport: httpx.BaseTransport | None = None

    def set_proxy(self, proxy: str) -> None:
        self.proxy = validate_proxy_url(proxy)
        self._invalidate()

    def proxy_from_environment(self) -> None:
        """Use the proxy named by HTTPS_PROXY, HTTP_PROXY or ALL_PROXY.

        The first one set wins. Leaves the proxy unchanged when none is set.
        """
        env = urllib.request.getproxies()
        for scheme in ("https", "http", "all"):
            if env.get(scheme):
                self.set_proxy(env[scheme])
                return

    def set_dial(self, dial: DialFunc | None) -> None:
        self.dial = dial
        self._invalidate()

    def set_insecure_skip_verify(self, skip: bool) -> None:
        self.insecure_skip_verify = skip
        self._invalidate()

    def set_dial_timeout(self, timeout: float | None) -> None:
        self.dial_timeout = timeout
        self._invalidate()

    def set_tls_timeout(self, timeout: float | None) -> None:
        self.tls_timeout = timeout
        self._invalidate()

    def set_response_header_timeout(self, timeout: float | None) -> None:
        self.response_header_timeout = timeout
        self._invalidate()

    def set_transport(self, transport: httpx.BaseTransport | None) -> None:
        """Use ``transport`` as is, bypassing proxy/dial/TLS settings.

        The caller keeps ownership: close() never closes it.
        """
        self._override = transport

    def build(self) -> httpx.BaseTransport:
        """Return the transport for the current settings, building it if needed."""
        if self._override is not None:
            return self._override
        if self._transport is None:
            self._transport = self._build_http_transport()
        return self._transport

    def timeouts(self, total: float | None) -> httpx.Timeout:
        """Compose the httpx timeout for one call.

        ``total`` bounds every phase that has no more specific setting.
        """
        total = total or None
        return httpx.Timeout(
            total,
            connect=self.tls_timeout or total,
            read=self.response_header_timeout or total,
        )

    def close(self) -> None:
        self._invalidate()

    def _build_http_transport(self) -> httpx.HTTPTransport:
        logger.debug(
            "Building transport (proxy=%s, custom_dial=%s, verify=%s)",
            self.proxy,
            self.dial is not None,
            not self.insecure_skip_verify,
        )
        transport = httpx.HTTPTransport(
            verify=not self.insecure_skip_verify,
            proxy=self.proxy,
            trust_env=False,
        )
        if self.dial is not None or self.dial_timeout:
            # HTTPTransport takes no network backend; swap it on the
            # underlying httpcore pool, which reads it on every new connection.
            transport._pool._network_backend = _DialBackend(self.dial, self.dial_timeout)
        return transport

    def _invalidate(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
