"""Core data models for hostgreet.

This module defines the value types shared by the route handler, the server
handle and the lifecycle coordinator.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ResponsePayload(BaseModel):
    """Body of a successful greeting response.

    Built fresh for every request and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    data: str
    version: str


class ServerState(str, Enum):
    """Lifecycle of a server handle. Transitions only move forward."""

    UNSTARTED = "unstarted"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
