"""Async HTTP client for the OpenCode server."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import BackendRequestError, BackendUnavailableError, InvalidBackendResponseError
from .models import Message, ModelRef, PromptRequest, ProvidersResponse, Session

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .config import BridgeConfig

logger = logging.getLogger("opencode_bridge.client")

_ModelT = TypeVar("_ModelT", bound=BaseModel)
_MESSAGE_LIST = TypeAdapter(list[Message])


class BackendClient(Protocol):
    """Operations the bridge needs from an OpenCode server."""

    async def create_session(self, title: str | None = None) -> Session: ...

    async def send_prompt(self, session_id: str, content: str, model: ModelRef | None = None) -> Message: ...

    async def get_message(self, session_id: str, message_id: str) -> Message: ...

    async def get_messages(self, session_id: str) -> list[Message]: ...

    async def list_providers(self) -> ProvidersResponse: ...


def _raise_for_status(response: httpx.Response) -> None:
    if 200 <= response.status_code < 300:
        return
    detail = None
    body = response.text
    if body:
        try:
            payload = json.loads(body)
            if isinstance(payload, Mapping):
                detail = payload.get("message") or payload.get("error") or payload.get("detail")
        except json.JSONDecodeError:
            detail = body[:200]
    raise BackendRequestError(response.status_code, str(detail) if detail else None)


def _validate(model: type[_ModelT], data: Any, *, what: str) -> _ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidBackendResponseError(f"{what}: {exc.error_count()} validation error(s)") from exc


@dataclass(slots=True)
class OpenCodeClient:
    base_url: str
    api_key: str | None = None
    directory: str | None = None
    agent: str | None = "build"
    timeout_s: float | None = 120.0
    client: httpx.AsyncClient | None = None
    _owned_client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, config: BridgeConfig, *, client: httpx.AsyncClient | None = None) -> OpenCodeClient:
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            directory=config.directory,
            agent=config.agent,
            timeout_s=config.request_timeout_s,
            client=client,
        )

    async def start(self) -> None:
        """Open a pooled connection reused by every request until :meth:`aclose`."""

        if self.client is None and self._owned_client is None:
            self._owned_client = httpx.AsyncClient(timeout=self.timeout_s)

    async def aclose(self) -> None:
        owned = self._owned_client
        self._owned_client = None
        if owned is not None:
            await owned.aclose()

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        shared = self.client or self._owned_client
        if shared is not None:
            yield shared
            return
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            yield client

    def _base_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, *, payload: Any | None = None) -> Any:
        url = f"{self.base_url.rstrip('/')}{path}"
        params = {"directory": self.directory} if self.directory else None
        logger.debug("backend_request", extra={"method": method, "path": path})
        async with self._client_context() as client:
            try:
                response = await client.request(
                    method,
                    url,
                    json=payload,
                    params=params,
                    headers=self._base_headers(),
                )
            except httpx.RequestError as exc:
                reason = str(exc) or exc.__class__.__name__
                raise BackendUnavailableError(f"{method} {path}: {reason}") from exc
        _raise_for_status(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise InvalidBackendResponseError(f"{method} {path} did not return JSON") from exc

    async def create_session(self, title: str | None = None) -> Session:
        body: dict[str, Any] = {}
        if title:
            body["title"] = title
        data = await self._request("POST", "/session", payload=body)
        return _validate(Session, data, what="session")

    async def send_prompt(self, session_id: str, content: str, model: ModelRef | None = None) -> Message:
        prompt = PromptRequest.of_text(content, model, agent=self.agent)
        data = await self._request("POST", f"/session/{session_id}/message", payload=prompt.to_payload())
        return _validate(Message, data, what="prompt response")

    async def get_message(self, session_id: str, message_id: str) -> Message:
        data = await self._request("GET", f"/session/{session_id}/message/{message_id}")
        return _validate(Message, data, what="message")

    async def get_messages(self, session_id: str) -> list[Message]:
        data = await self._request("GET", f"/session/{session_id}/message")
        if data is None:
            return []
        try:
            return _MESSAGE_LIST.validate_python(data)
        except ValidationError as exc:
            raise InvalidBackendResponseError(f"message list: {exc.error_count()} validation error(s)") from exc

    async def list_providers(self) -> ProvidersResponse:
        data = await self._request("GET", "/config/providers")
        return _validate(ProvidersResponse, data or {}, what="providers")


__all__ = ["BackendClient", "OpenCodeClient"]
