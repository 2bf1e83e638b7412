"""Client pool - reuses bare httpx.Client objects across requests."""

from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from typing import Iterator

import httpx


class ClientPool:
    """Thread-safe pool of reusable httpx clients.

    acquire() hands out an idle client or creates a bare one; release() puts
    it back as is. Clients are NOT reset on release: they keep whatever
    transport, timeout, event hooks and cookies the last borrower set, so a
    borrower must apply all of its own settings before sending.

    Usage:
        pool = ClientPool(max_idle=8)
        with pool.borrow() as client:
            ...
        pool.close()
    """

    def __init__(self, max_idle: int | None = None) -> None:
        """Initialize the pool.

        Args:
            max_idle: Maximum number of idle clients kept. Clients released
                      beyond this are dropped, not closed. None keeps every client.
        """
        if max_idle is not None and max_idle < 1:
            raise ValueError(f"max_idle must be >= 1 or None, got {max_idle}")
        self._max_idle = max_idle
        self._idle: deque[httpx.Client] = deque()
        self._lock = threading.Lock()

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)

    def acquire(self) -> httpx.Client:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return _new_client()

    def release(self, client: httpx.Client) -> None:
        # Surplus clients are dropped, not closed: close() would also close
        # the transport, which belongs to the builder that set it.
        with self._lock:
            if self._max_idle is None or len(self._idle) < self._max_idle:
                self._idle.append(client)

    @contextmanager
    def borrow(self) -> Iterator[httpx.Client]:
        """Acquire a client for the duration of the block, releasing it even on error."""
        client = self.acquire()
        try:
            yield client
        finally:
            self.release(client)

    def close(self) -> None:
        """Drop every idle client. Checked-out clients are unaffected."""
        with self._lock:
            self._idle.clear()

    def __enter__(self) -> ClientPool:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()


def _new_client() -> httpx.Client:
    # trust_env=False: proxies come from the transport configuration only.
    return httpx.Client(trust_env=False)

