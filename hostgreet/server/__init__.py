"""HTTP application and server handle."""

from .application import create_app
from .handle import ServerHandle

__all__ = ["ServerHandle", "create_app"]
