"""Shared fixtures for hostgreet unit tests."""

import asyncio
import threading
import time

import pytest
from fastapi import FastAPI
from loguru import logger

from hostgreet.common.errors import ShutdownTimeoutError
from hostgreet.common.models import ServerState
from hostgreet.server.handle import ServerHandle
from hostgreet.settings import ServerSettings


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def local_config():
    """Listener config on an ephemeral loopback port."""
    return ServerSettings(host="127.0.0.1", port=0)


@pytest.fixture
def slow_app():
    """App with a ``/slow`` route that sleeps for ``app.state.delay`` seconds.

    ``app.state.entered`` is set when the handler starts and
    ``app.state.completed`` when it returns.
    """
    app = FastAPI()
    app.state.delay = 0.5
    app.state.entered = threading.Event()
    app.state.completed = threading.Event()

    @app.get("/slow")
    async def slow():
        app.state.entered.set()
        await asyncio.sleep(app.state.delay)
        app.state.completed.set()
        return {"status": "done"}

    return app


class RunningServer:
    """A server handle started on a background thread."""

    def __init__(self, handle: ServerHandle):
        self.handle = handle
        self.error: Exception | None = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.handle.start()
        except Exception as e:
            self.error = e

    def start(self) -> "RunningServer":
        self.thread.start()
        assert wait_until(lambda: self.handle.state is not ServerState.UNSTARTED)
        return self

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.handle.port}"


@pytest.fixture
def serve_in_thread():
    """Start handles on background threads and stop them after the test."""
    started: list[RunningServer] = []

    def _start(app, config: ServerSettings) -> RunningServer:
        server = RunningServer(ServerHandle(app, config)).start()
        started.append(server)
        return server

    yield _start

    for server in started:
        if server.handle.state is ServerState.LISTENING:
            try:
                server.handle.shutdown(1.0)
            except ShutdownTimeoutError:
                pass
        server.thread.join(timeout=5)
