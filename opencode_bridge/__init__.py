"""OpenAI-compatible chat completions backed by OpenCode sessions."""

from .aggregator import TurnAggregator, TurnResult
from .client import BackendClient, OpenCodeClient
from .config import BridgeConfig, SessionFallbackPolicy
from .errors import (
    BackendRequestError,
    BackendUnavailableError,
    BridgeError,
    InvalidBackendResponseError,
    RequestValidationError,
)
from .http import create_bridge_app
from .poller import PollResult, PollState, TurnPoller
from .registry import InMemorySessionStore, SessionRegistry
from .render import render_message, render_part
from .service import BridgeService
from .streaming import ChunkEmitter

__all__ = [
    "BackendClient",
    "BackendRequestError",
    "BackendUnavailableError",
    "BridgeConfig",
    "BridgeError",
    "BridgeService",
    "ChunkEmitter",
    "InMemorySessionStore",
    "InvalidBackendResponseError",
    "OpenCodeClient",
    "PollResult",
    "PollState",
    "RequestValidationError",
    "SessionFallbackPolicy",
    "SessionRegistry",
    "TurnAggregator",
    "TurnPoller",
    "TurnResult",
    "create_bridge_app",
    "render_message",
    "render_part",
]
