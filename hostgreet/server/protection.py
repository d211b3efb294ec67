"""Request protection for slow or stalled clients.

``TimeoutH11Protocol`` adds two per-connection deadlines to uvicorn's h11
protocol, next to uvicorn's own keep-alive (idle) timeout:

* header-read: the connection is closed if a request's headers do not arrive
  within ``header_read_timeout``. The window opens when the connection is
  accepted and, on kept-alive connections, with the first byte of each new
  request.
* write: once the headers are read, the response must be complete within
  ``write_timeout``. On expiry the connection is closed; the request task is
  left running, so a graceful shutdown still waits for it.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any

from uvicorn.protocols.http.h11_impl import H11Protocol

from hostgreet.utils.logging import get_logger

logger = get_logger("hostgreet.server.protection")


class TimeoutH11Protocol(H11Protocol):
    """h11 protocol that enforces header-read and write deadlines."""

    def __init__(
        self,
        *args: Any,
        header_read_timeout: float = 5.0,
        write_timeout: float = 10.0,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.header_read_timeout = header_read_timeout
        self.write_timeout = write_timeout
        self._header_timer: asyncio.TimerHandle | None = None
        self._write_timer: asyncio.TimerHandle | None = None

    def connection_made(self, transport: asyncio.Transport) -> None:
        super().connection_made(transport)
        self._arm_header_timer()

    def data_received(self, data: bytes) -> None:
        super().data_received(data)
        self._update_timers()

    def on_response_complete(self) -> None:
        self._disarm(write=True)
        super().on_response_complete()
        # A pipelined request may already have been parsed.
        if not self._awaiting_headers():
            self._update_timers()

    def connection_lost(self, exc: Exception | None) -> None:
        self._disarm(header=True, write=True)
        super().connection_lost(exc)

    def _awaiting_headers(self) -> bool:
        return self.cycle is None or self.cycle.response_complete

    def _update_timers(self) -> None:
        if self.transport.is_closing():
            self._disarm(header=True, write=True)
        elif self._awaiting_headers():
            self._arm_header_timer()
        else:
            self._disarm(header=True)
            if self._write_timer is None:
                self._write_timer = self.loop.call_later(
                    self.write_timeout, self._on_write_timeout
                )

    def _arm_header_timer(self) -> None:
        if self._header_timer is None:
            self._header_timer = self.loop.call_later(
                self.header_read_timeout, self._on_header_timeout
            )

    def _disarm(self, header: bool = False, write: bool = False) -> None:
        if header and self._header_timer is not None:
            self._header_timer.cancel()
            self._header_timer = None
        if write and self._write_timer is not None:
            self._write_timer.cancel()
            self._write_timer = None

    def _on_header_timeout(self) -> None:
        self._header_timer = None
        if self._awaiting_headers() and not self.transport.is_closing():
            logger.warning(
                f"closing connection from {self.client}: request headers not "
                f"received within {self.header_read_timeout:g}s"
            )
            self.transport.close()

    def _on_write_timeout(self) -> None:
        self._write_timer = None
        if not self._awaiting_headers() and not self.transport.is_closing():
            logger.warning(
                f"closing connection from {self.client}: response not written "
                f"within {self.write_timeout:g}s"
            )
            self.transport.close()


def timeout_protocol(header_read_timeout: float, write_timeout: float) -> functools.partial:
    """Protocol factory accepted by ``uvicorn.Config(http=...)``."""
    return functools.partial(
        TimeoutH11Protocol,
        header_read_timeout=header_read_timeout,
        write_timeout=write_timeout,
    )
