"""Tests for reqchain.redirects: the default limit policy and the hook adapter."""

import httpx
import pytest

from reqchain.errors import TooManyRedirects
from reqchain.redirects import DEFAULT_REDIRECT_LIMIT, LimitRedirects, RedirectGuard


def _chain(length: int) -> list[httpx.Request]:
    return [httpx.Request("GET", f"http://example.test/{i}") for i in range(length)]


class TestLimitRedirects:
    """Boundary behavior of the default policy."""

    def test_default_limit_is_five(self) -> None:
        assert LimitRedirects().limit == DEFAULT_REDIRECT_LIMIT == 5

    def test_chain_of_limit_minus_one_allowed(self) -> None:
        policy = LimitRedirects(5)
        policy(httpx.Request("GET", "http://example.test/next"), _chain(4))

    def test_chain_equal_to_limit_rejected(self) -> None:
        policy = LimitRedirects(5)
        with pytest.raises(TooManyRedirects, match="stopped after 5 redirects"):
            policy(httpx.Request("GET", "http://example.test/next"), _chain(5))

    def test_zero_limit_rejects_first_redirect(self) -> None:
        with pytest.raises(TooManyRedirects):
            LimitRedirects(0)(httpx.Request("GET", "http://example.test/"), _chain(1))

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            LimitRedirects(-1)


class TestRedirectGuard:
    """The guard seeds the chain on the first request and checks later ones."""

    def test_first_request_not_checked(self) -> None:
        calls = []
        guard = RedirectGuard(lambda req, via: calls.append((req, via)))
        guard(httpx.Request("GET", "http://example.test/"))
        assert calls == []
        assert len(guard.via) == 1

    def test_redirect_sees_prior_chain(self) -> None:
        seen: list[list[str]] = []
        guard = RedirectGuard(lambda req, via: seen.append([str(r.url) for r in via]))
        for request in _chain(3):
            guard(request)
        assert seen == [
            ["http://example.test/0"],
            ["http://example.test/0", "http://example.test/1"],
        ]

    def test_policy_error_propagates(self) -> None:
        guard = RedirectGuard(LimitRedirects(1))
        guard(httpx.Request("GET", "http://example.test/"))
        with pytest.raises(TooManyRedirects):
            guard(httpx.Request("GET", "http://example.test/next"))

    def test_rejected_hop_not_recorded(self) -> None:
        guard = RedirectGuard(LimitRedirects(1))
        guard(httpx.Request("GET", "http://example.test/"))
        with pytest.raises(TooManyRedirects):
            guard(httpx.Request("GET", "http://example.test/next"))
        assert len(guard.via) == 1
