"""Errors raised by reqchain.

Every failure surfaces synchronously from the call that caused it. Nothing is
retried and nothing is logged on the way out.
"""

from __future__ import annotations


class ReqchainError(Exception):
    """Base class for reqchain errors."""


class URLParseError(ReqchainError):
    """Raised when the target URL cannot be parsed."""


class ProxyConfigError(ReqchainError):
    """Raised by set_proxy when the proxy URL is malformed.

    Raised at configuration time, not deferred to dispatch.
    """


class TooManyRedirects(ReqchainError):
    """Raised by a redirect policy to stop following redirects."""


class TransportError(ReqchainError):
    """Raised when the exchange fails (connect, TLS, timeout, protocol)."""


class BodyReadError(ReqchainError):
    """Raised when the response body cannot be drained or closed."""

