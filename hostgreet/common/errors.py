"""Error types raised by the server handle and the lifecycle coordinator."""


class HostgreetError(Exception):
    """Base class for hostgreet errors."""


class ServerStartError(HostgreetError):
    """The listener could not be bound."""

    def __init__(self, address: str, reason: Exception):
        self.address = address
        self.reason = reason
        super().__init__(f"cannot listen on {address}: {reason}")


class ServerError(HostgreetError):
    """The server stopped for a reason other than a requested shutdown."""


class ShutdownTimeoutError(HostgreetError):
    """Requests were still in flight when the shutdown deadline expired."""

    def __init__(self, timeout: float, open_connections: int, pending_requests: int):
        self.timeout = timeout
        self.open_connections = open_connections
        self.pending_requests = pending_requests
        super().__init__(
            f"shutdown deadline of {timeout:g}s exceeded with "
            f"{pending_requests} request(s) in flight and "
            f"{open_connections} connection(s) still open"
        )
