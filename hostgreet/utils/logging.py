"""Logging setup built on loguru.

Every module asks for a logger with ``get_logger("hostgreet.<module>")``. The
stdlib ``logging`` records emitted by uvicorn are intercepted and forwarded to
the same loguru sink so the process has one human-readable log stream.
"""

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY/MM/DD HH:mm:ss}</green> "
    "<level>{level: <8}</level> "
    "<cyan>{extra[module]}</cyan> {message}"
)

_configured = False


class InterceptHandler(logging.Handler):
    """Route stdlib log records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(module=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def configure_logging(level: str = "INFO", force: bool = False) -> None:
    """Install the stderr sink and the stdlib interceptor.

    Args:
        level: Minimum level for the sink
        force: Reconfigure even if logging was already set up
    """
    global _configured
    if _configured and not force:
        return

    logger.remove()
    logger.configure(extra={"module": "hostgreet"})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=None)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = []
        std_logger.propagate = True

    _configured = True


def get_logger(name: str | None = None):
    """Return the shared loguru logger bound to a module name."""
    return logger.bind(module=name or "hostgreet")
