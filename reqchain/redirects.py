"""Redirect policy - decides, hop by hop, whether a redirect may be followed."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from reqchain.errors import TooManyRedirects

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_LIMIT = 5

# policy(request, via) -> None; raise to stop following.
# ``request`` is the redirect about to be sent; ``via`` holds the requests
# already sent for this call, oldest first.
RedirectPolicy = Callable[[httpx.Request, "list[httpx.Request]"], None]


class LimitRedirects:
    """Default policy: stop once ``limit`` requests have been sent.

    The Nth redirect arrives with N requests in ``via`` and is rejected when
    N >= limit, so a limit of 5 follows at most 4 redirects and a limit of 0
    follows none.
    """

    def __init__(self, limit: int = DEFAULT_REDIRECT_LIMIT) -> None:
        if limit < 0:
            raise ValueError(f"Redirect limit must be >= 0, got {limit}")
        self.limit = limit

    def __call__(self, request: httpx.Request, via: list[httpx.Request]) -> None:
        if len(via) >= self.limit:
            raise TooManyRedirects(f"stopped after {self.limit} redirects")

    def __repr__(self) -> str:
        return f"LimitRedirects(limit={self.limit})"


class RedirectGuard:
    """httpx request hook that runs a redirect policy for one logical call.

    httpx fires request hooks for the initial request and for every redirect
    it follows. The first request only seeds the chain; every later one is a
    redirect hop and goes through the policy before it is sent.
    """

    def __init__(self, policy: RedirectPolicy) -> None:
        self._policy = policy
        self._via: list[httpx.Request] = []

    @property
    def via(self) -> list[httpx.Request]:
        return list(self._via)

    def __call__(self, request: httpx.Request) -> None:
        if self._via:
            logger.debug("Redirect hop %d -> %s", len(self._via), request.url)
            self._policy(request, list(self._via))
        self._via.append(request)
