"""hostgreet: a single-route greeting server with graceful shutdown."""

__version__ = "3.2.0"
