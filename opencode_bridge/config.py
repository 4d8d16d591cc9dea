from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

DEFAULT_MODEL_ALIASES: dict[str, str] = {
    "gpt-4": "grok-code",
    "gpt-4-turbo": "grok-code",
    "gpt-3.5-turbo": "qwen3-coder",
    "gpt-3.5-turbo-16k": "qwen3-coder",
}


class SessionFallbackPolicy(str, Enum):
    LOCAL = "local"
    RAISE = "raise"


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(slots=True)
class BridgeConfig:
    base_url: str = "http://127.0.0.1:4096"
    api_key: str | None = None
    directory: str | None = None
    request_timeout_s: float = 120.0
    poll_interval_s: float = 1.0
    max_poll_attempts: int = 60
    chunk_size: int = 50
    stream_delay_s: float = 0.02
    emit_role_frame: bool = True
    session_fallback: SessionFallbackPolicy = SessionFallbackPolicy.LOCAL
    session_title: str = "OpenAI Bridge Session"
    default_session_key: str = "default"
    default_provider: str = "opencode"
    agent: str = "build"
    model_aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_ALIASES))
    include_user_messages: bool = True
    disconnect_check_s: float = 0.5
    service_name: str = "OpenAI API Bridge for OpenCode"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be non-empty")
        self.base_url = self.base_url.rstrip("/")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.max_poll_attempts < 0:
            raise ValueError("max_poll_attempts must be >= 0")
        if self.poll_interval_s < 0:
            raise ValueError("poll_interval_s must be >= 0")
        if self.stream_delay_s < 0:
            raise ValueError("stream_delay_s must be >= 0")
        if self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be > 0")
        if self.disconnect_check_s <= 0:
            raise ValueError("disconnect_check_s must be > 0")
        if not isinstance(self.session_fallback, SessionFallbackPolicy):
            self.session_fallback = SessionFallbackPolicy(self.session_fallback)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build a config from ``OPENCODE_*`` environment variables."""

        source = os.environ if env is None else env
        defaults = cls()
        return cls(
            base_url=source.get("OPENCODE_URL") or defaults.base_url,
            api_key=source.get("OPENCODE_API_KEY") or None,
            directory=source.get("OPENCODE_DIRECTORY") or None,
            request_timeout_s=_env_float(source, "OPENCODE_TIMEOUT", defaults.request_timeout_s),
            poll_interval_s=_env_float(source, "OPENCODE_BRIDGE_POLL_INTERVAL", defaults.poll_interval_s),
            max_poll_attempts=_env_int(source, "OPENCODE_BRIDGE_MAX_POLL_ATTEMPTS", defaults.max_poll_attempts),
            chunk_size=_env_int(source, "OPENCODE_BRIDGE_CHUNK_SIZE", defaults.chunk_size),
            stream_delay_s=_env_float(source, "OPENCODE_BRIDGE_STREAM_DELAY", defaults.stream_delay_s),
            emit_role_frame=_env_bool(source, "OPENCODE_BRIDGE_ROLE_FRAME", defaults.emit_role_frame),
            session_fallback=SessionFallbackPolicy(
                (source.get("OPENCODE_BRIDGE_SESSION_FALLBACK") or defaults.session_fallback.value).lower()
            ),
            default_provider=source.get("OPENCODE_DEFAULT_PROVIDER") or defaults.default_provider,
            agent=source.get("OPENCODE_AGENT") or defaults.agent,
            include_user_messages=_env_bool(
                source, "OPENCODE_BRIDGE_INCLUDE_USER_MESSAGES", defaults.include_user_messages
            ),
            disconnect_check_s=_env_float(
                source, "OPENCODE_BRIDGE_DISCONNECT_CHECK", defaults.disconnect_check_s
            ),
        )


__all__ = ["BridgeConfig", "DEFAULT_MODEL_ALIASES", "SessionFallbackPolicy"]
