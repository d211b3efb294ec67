"""Server startup and shutdown utilities.

This module runs the server handle on a background thread and coordinates its
graceful shutdown when SIGINT or SIGTERM arrives.
"""

import asyncio
import os
import signal
import sys
import threading
from typing import Any, Iterable

from hostgreet.common.errors import ShutdownTimeoutError
from hostgreet.server.application import create_app
from hostgreet.server.handle import ServerHandle
from hostgreet.settings import Settings, app_settings
from hostgreet.utils.logging import configure_logging, get_logger

logger = get_logger("hostgreet.utils.server_runner")

HANDLED_SIGNALS = (
    signal.SIGINT,  # Ctrl+C
    signal.SIGTERM,  # Docker/systemd stop
)


class TerminationSignal:
    """One-shot future fulfilled by the first termination signal.

    Used as an async context manager: handlers are registered on the running
    loop on entry and removed on exit. Signals arriving after the first one are
    logged and otherwise ignored while the context is open.
    """

    def __init__(self, signals: Iterable[signal.Signals] = HANDLED_SIGNALS):
        self.signals = tuple(signals)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future | None = None

    @property
    def future(self) -> asyncio.Future:
        if self._future is None:
            raise RuntimeError("TerminationSignal is not active")
        return self._future

    async def __aenter__(self) -> "TerminationSignal":
        self._loop = asyncio.get_running_loop()
        self._future = self._loop.create_future()
        for sig in self.signals:
            self._loop.add_signal_handler(sig, self._on_signal, sig)
        logger.debug("Signal handlers registered for graceful shutdown")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        for sig in self.signals:
            self._loop.remove_signal_handler(sig)
        if not self._future.done():
            self._future.cancel()

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._future.done():
            logger.info(f"Received {sig.name}, shutdown already in progress")
            return
        self._future.set_result(sig)

    async def wait(self) -> signal.Signals:
        return await self.future


def launch_runner(handle: ServerHandle) -> asyncio.Future:
    """Run ``handle.start()`` on a daemon thread.

    Returns:
        Future on the running loop that completes when ``start()`` returns,
        carrying its exception if it raised
    """
    loop = asyncio.get_running_loop()
    finished: asyncio.Future = loop.create_future()

    def settle(error: Exception | None) -> None:
        if finished.done():
            return
        if error is None:
            finished.set_result(None)
        else:
            finished.set_exception(error)

    def target() -> None:
        error: Exception | None = None
        try:
            handle.start()
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(settle, error)
        except RuntimeError:
            logger.debug("Coordinator loop closed before the server thread finished")

    thread = threading.Thread(target=target, name="hostgreet-server", daemon=True)
    thread.start()
    return finished


async def coordinate(
    handle: ServerHandle,
    shutdown_timeout: float = app_settings.server.shutdown_timeout,
) -> int:
    """Serve until a termination signal, then shut down within ``shutdown_timeout``.

    Args:
        handle: Server handle to start and later shut down
        shutdown_timeout: Seconds in-flight requests may take to drain

    Returns:
        Process exit code: 1 if the server could not run, 0 otherwise
    """
    logger.info(f"starting hostgreet server (pid={os.getpid()}) on {handle.address}")
    runner = launch_runner(handle)

    async with TerminationSignal() as termination:
        await asyncio.wait(
            {runner, termination.future}, return_when=asyncio.FIRST_COMPLETED
        )

        if runner.done():
            error = runner.exception()
            if error is not None:
                logger.critical(f"http server error: {error}")
                return 1
            logger.warning("http server stopped before a shutdown signal was received")
        else:
            sig = termination.future.result()
            logger.info(f"shutdown signal received ({sig.name})")
            try:
                await asyncio.to_thread(handle.shutdown, shutdown_timeout)
            except ShutdownTimeoutError as e:
                logger.warning(f"graceful shutdown failed: {e}")
            else:
                logger.info("graceful shutdown complete")

    logger.info("server stopped")
    return 0


def run_server(app: Any = None, settings: Settings = app_settings) -> None:
    """Run the greeting server until SIGINT or SIGTERM.

    Args:
        app: ASGI application to serve; defaults to the greeting app
        settings: Application settings
    """
    configure_logging(settings.logging.level)

    handle = ServerHandle(
        app if app is not None else create_app(settings=settings.payload),
        settings.server,
    )
    exit_code = asyncio.run(coordinate(handle, settings.server.shutdown_timeout))
    if exit_code:
        sys.exit(exit_code)
