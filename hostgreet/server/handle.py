"""Server handle: the listener and its single shutdown control surface.

A ``ServerHandle`` is created once by the coordinator and passed to the runner
thread. ``start()`` blocks that thread while uvicorn serves on a private event
loop; ``shutdown()`` is the only call made from the other side, and it is made
at most once.
"""

from __future__ import annotations

import asyncio
import socket
import threading
from typing import Any

import uvicorn

from hostgreet.common.errors import ServerError, ServerStartError, ShutdownTimeoutError
from hostgreet.common.models import ServerState
from hostgreet.server.protection import timeout_protocol
from hostgreet.settings import ServerSettings, app_settings
from hostgreet.utils.logging import get_logger

logger = get_logger("hostgreet.server.handle")

# Time allowed for the server loop to unwind after connections are abandoned.
ABANDON_GRACE_SECONDS = 1.0


class ServerHandle:
    """Owns a uvicorn server bound to a fixed address."""

    def __init__(self, app: Any, settings: ServerSettings = app_settings.server):
        """Initialize the handle without binding anything.

        Args:
            app: ASGI application to serve
            settings: Listener address and protection timeouts
        """
        self.settings = settings
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                http=timeout_protocol(
                    self.settings.header_read_timeout, self.settings.write_timeout
                ),
                ws="none",
                lifespan="auto",
                timeout_keep_alive=self.settings.idle_timeout,
                log_config=None,
                access_log=False,
                server_header=False,
            )
        )
        self._state = ServerState.UNSTARTED
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sock: socket.socket | None = None
        self._bound_port: int | None = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def port(self) -> int:
        """Bound port, or the configured one before binding."""
        if self._bound_port is not None:
            return self._bound_port
        return self.settings.port

    @property
    def address(self) -> str:
        return f"{self.settings.host}:{self.port}"

    def _bind(self) -> socket.socket:
        if not self.settings.host and socket.has_dualstack_ipv6():
            return socket.create_server(
                ("", self.settings.port),
                family=socket.AF_INET6,
                dualstack_ipv6=True,
            )
        return socket.create_server((self.settings.host, self.settings.port))

    def start(self) -> None:
        """Bind the listener and serve until it is closed.

        Blocks the calling thread. Returns normally when the listener was closed
        through ``shutdown()``, including a shutdown requested before start.

        Raises:
            ServerStartError: If the address cannot be bound
            ServerError: If serving ends for any other reason
            RuntimeError: If the handle was already started
        """
        with self._lock:
            if self._state is ServerState.STOPPED:
                logger.debug("start called on a handle that was already shut down")
                return
            if self._state is not ServerState.UNSTARTED:
                raise RuntimeError(f"server is already {self._state.value}")
            try:
                self._sock = self._bind()
                self._bound_port = self._sock.getsockname()[1]
            except OSError as e:
                self._state = ServerState.STOPPED
                self._stopped.set()
                raise ServerStartError(self.address, e) from e
            self._state = ServerState.LISTENING

        logger.debug(f"listening on {self.address}")
        failure: BaseException | None = None
        try:
            asyncio.run(self._serve())
        except (Exception, SystemExit) as e:
            failure = e
        finally:
            self._sock.close()
            with self._lock:
                requested = self._state is ServerState.SHUTTING_DOWN
                self._state = ServerState.STOPPED
            self._stopped.set()

        if failure is not None:
            raise ServerError(f"server on {self.address} failed: {failure!r}") from failure
        if not requested:
            raise ServerError(f"server on {self.address} stopped without a shutdown request")

    async def _serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        # Signal handling stays with the coordinator; uvicorn skips it off the main thread.
        await self._server.serve(sockets=[self._sock])

    def shutdown(self, timeout: float) -> None:
        """Stop accepting connections and drain in-flight requests.

        Idle keep-alive connections are closed at once. Requests already being
        served may finish until ``timeout`` elapses; after that every remaining
        connection is closed and every pending request task cancelled. A request
        whose connection was dropped by the write timeout still counts as in
        flight.

        Args:
            timeout: Seconds to wait for in-flight requests

        Raises:
            ShutdownTimeoutError: If requests were still in flight at the deadline
            RuntimeError: If another shutdown is already in progress
        """
        with self._lock:
            if self._state is ServerState.SHUTTING_DOWN:
                raise RuntimeError("shutdown already in progress")
            if self._state is ServerState.STOPPED:
                return
            if self._state is ServerState.UNSTARTED:
                self._state = ServerState.STOPPED
                self._stopped.set()
                return
            self._state = ServerState.SHUTTING_DOWN

        logger.debug(f"closing listener on {self.address}, draining for up to {timeout:g}s")
        self._server.should_exit = True
        if self._stopped.wait(timeout):
            return

        open_connections, pending_requests = self._abandon_connections()
        if not self._stopped.wait(ABANDON_GRACE_SECONDS):
            logger.warning("server loop did not stop after abandoning connections")
        raise ShutdownTimeoutError(timeout, open_connections, pending_requests)

    def _abandon_connections(self) -> tuple[int, int]:
        """Close connections and cancel request tasks on the server loop.

        Returns:
            Number of open connections and of pending request tasks
        """
        server_state = self._server.server_state
        counts = (len(server_state.connections), len(server_state.tasks))

        def close_all() -> None:
            for connection in list(server_state.connections):
                connection.transport.close()
            for task in list(server_state.tasks):
                task.cancel()
            self._server.force_exit = True

        loop = self._loop
        if loop is None or loop.is_closed():
            return counts
        try:
            loop.call_soon_threadsafe(close_all)
        except RuntimeError:
            # The loop closed between the check and the call; nothing is left to close.
            logger.debug("server loop closed before connections could be abandoned")
        return counts
