"""Header store - case-insensitive, multi-valued request headers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

import httpx


class HeaderStore:
    """Mutable header collection keyed case-insensitively.

    Thin wrapper over httpx.Headers that gives the builder its set/add/get
    semantics: set replaces, add merges another collection key by key, get
    returns the first value.
    """

    def __init__(self, headers: Any = None) -> None:
        self._headers = _as_headers(headers)

    def set(self, key: str, value: str) -> None:
        """Replace every value of ``key`` with ``value``."""
        self._headers[key] = value

    def add(self, headers: Any) -> None:
        """Merge another header collection into this one.

        Each key present in ``headers`` takes the incoming values, replacing
        what was stored under that key. Keys not present in ``headers`` are
        left alone.
        """
        incoming = _as_headers(headers)
        replaced = set(incoming.keys())
        kept = [(k, v) for k, v in self._headers.raw if k.decode("latin-1").lower() not in replaced]
        self._headers = httpx.Headers(kept + incoming.raw)

    def get(self, key: str) -> str:
        """Return the first value of ``key``, or "" when absent."""
        values = self._headers.get_list(key)
        return values[0] if values else ""

    def get_list(self, key: str) -> list[str]:
        return self._headers.get_list(key)

    def copy(self) -> HeaderStore:
        """Return a deep copy; later changes to either side don't leak."""
        return HeaderStore(self._headers.raw)

    def to_httpx(self) -> httpx.Headers:
        return httpx.Headers(self._headers.raw)

    def multi_items(self) -> list[tuple[str, str]]:
        return self._headers.multi_items()

    def __contains__(self, key: object) -> bool:
        return key in self._headers

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers.keys())

    def __len__(self) -> int:
        return len(self._headers.keys())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeaderStore):
            return self._headers == other._headers
        return self._headers == other

    def __repr__(self) -> str:
        return f"HeaderStore({self._headers.multi_items()!r})"


def _as_headers(headers: Any) -> httpx.Headers:
    if isinstance(headers, HeaderStore):
        return headers.to_httpx()
    if isinstance(headers, httpx.Headers):
        return httpx.Headers(headers.raw)
    if isinstance(headers, Mapping):
        # Allow {"X-Tag": ["a", "b"]} for multi-valued keys
        items: list[tuple[str, str]] = []
        for key, value in headers.items():
            if isinstance(value, (list, tuple)):
                items.extend((key, v) for v in value)
            else:
                items.append((key, value))
        return httpx.Headers(items)
    return httpx.Headers(headers)
