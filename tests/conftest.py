"""Pytest configuration and fixtures for reqchain tests.

This file provides:
- PortReservation: a loopback port held open until the server binds it
- MockServer: the tests/integration/mock_server.py subprocess
- mock_server: session fixture yielding a running MockServer
- Marker hook tagging tests unit or integration by directory
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Iterator

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"
LOOPBACK = "127.0.0.1"


class PortReservation:
    """An ephemeral loopback port, held by a bound socket until handed over.

    Tests that need a port nobody listens on read ``port`` after the block
    exits; the server path calls ``hand_over()`` right before spawning.
    """

    def __init__(self) -> None:
        self._sock: socket.socket | None = socket.create_server((LOOPBACK, 0))
        self.port: int = self._sock.getsockname()[1]

    def hand_over(self) -> int:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        return self.port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.hand_over()


def port_accepting(port: int, deadline: float) -> bool:
    """Poll until something accepts TCP on LOOPBACK:port or ``deadline`` passes."""
    while time.monotonic() < deadline:
        try:
            socket.create_connection((LOOPBACK, port), timeout=0.5).close()
        except OSError:
            time.sleep(0.05)
        else:
            return True
    return False


class MockServer:
    """The FastAPI mock server running in a child process.

    Usage:
        with MockServer(PortReservation()) as server:
            Request().get(server.url("/echo"))
    """

    startup_timeout = 10.0

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.address = f"{LOOPBACK}:{self.port}"
        self.base_url = f"http://{self.address}"
        self._process: subprocess.Popen[bytes] | None = None

    def url(self, path: str) -> str:
        return self.base_url + path

    def start(self) -> None:
        """Spawn the server and wait for it to listen.

        Raises:
            RuntimeError: The server did not accept connections in time; the
                message carries its stderr.
        """
        command = [sys.executable, "-m", MOCK_SERVER_MODULE, "--host", LOOPBACK,
                   "--port", str(self._reservation.hand_over())]
        self._process = subprocess.Popen(
            command, cwd=PROJECT_ROOT, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE
        )
        if port_accepting(self.port, time.monotonic() + self.startup_timeout):
            return

        self._process.kill()
        _, stderr = self._process.communicate()
        self._process = None
        raise RuntimeError(
            f"mock server did not start on {self.address}: "
            f"{stderr.decode(errors='replace') or '(no stderr)'}"
        )

    def stop(self) -> None:
        """Terminate the server, killing it if it ignores SIGTERM. Idempotent."""
        process, self._process = self._process, None
        if process is None:
            return
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_server() -> Iterator[MockServer]:
    """One mock server shared by the whole test session."""
    with MockServer(PortReservation()) as server:
        yield server


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Mark tests under integration/ as integration and everything else as unit.

    Select with ``pytest -m unit`` or ``pytest -m integration``.
    """
    for item in items:
        marker = pytest.mark.integration if "integration" in item.path.parts else pytest.mark.unit
        item.add_marker(marker)
