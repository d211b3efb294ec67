"""Greeting application.

A FastAPI app with one catch-all route. GET requests receive a JSON greeting
naming the host; every other method is answered with 405.
"""

import socket
from http import HTTPStatus
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from hostgreet import __version__
from hostgreet.common.models import ResponsePayload
from hostgreet.settings import PayloadSettings, app_settings
from hostgreet.utils.logging import get_logger

logger = get_logger("hostgreet.server.application")

HostnameResolver = Callable[[], str]


def resolve_host_identity(resolver: HostnameResolver, fallback: str) -> str:
    """Return the host name, or ``fallback`` if it cannot be read."""
    try:
        return resolver()
    except OSError as e:
        logger.error(f"failed to read hostname: {e}")
        return fallback


def build_payload(hostname: str, settings: PayloadSettings) -> ResponsePayload:
    return ResponsePayload(
        data=settings.greeting_prefix + hostname,
        version=settings.version,
    )


def method_not_allowed() -> Response:
    status = HTTPStatus.METHOD_NOT_ALLOWED
    return PlainTextResponse(
        f"{status.phrase}\n",
        status_code=status.value,
        headers={"Allow": "GET", "X-Content-Type-Options": "nosniff"},
    )


async def greet(request: Request) -> Response:
    """Answer a request with the host greeting."""
    if request.method != "GET":
        return method_not_allowed()

    settings: PayloadSettings = request.app.state.payload_settings
    hostname = resolve_host_identity(
        request.app.state.hostname_resolver, settings.fallback_hostname
    )
    payload = build_payload(hostname, settings)

    try:
        body = payload.model_dump_json() + "\n"
    except ValueError as e:
        # The status line is already decided; the client gets an empty body.
        logger.error(f"failed to write response: {e}")
        body = ""

    return Response(content=body, media_type="application/json")


def create_app(
    hostname_resolver: HostnameResolver = socket.gethostname,
    settings: PayloadSettings = app_settings.payload,
) -> FastAPI:
    """Create the greeting application.

    Args:
        hostname_resolver: Callable returning the host name; raises ``OSError``
            when the name cannot be read
        settings: Greeting constants

    Returns:
        FastAPI application serving the greeting on every path
    """
    app = FastAPI(
        title="hostgreet",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.hostname_resolver = hostname_resolver
    app.state.payload_settings = settings

    # Every path is served, matching a subtree pattern rooted at "/".
    app.add_route("/{path:path}", greet, include_in_schema=False)
    return app
