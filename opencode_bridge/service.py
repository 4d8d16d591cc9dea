"""Serve OpenAI chat completions from OpenCode sessions."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from .aggregator import TurnAggregator, TurnResult
from .chat_models import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    HealthResponse,
    ModelCard,
    ModelList,
    new_completion_id,
)
from .client import BackendClient, OpenCodeClient
from .config import BridgeConfig
from .errors import BridgeError, RequestValidationError
from .models import ModelRef
from .poller import TurnPoller
from .registry import SessionRegistry, SessionStore
from .routing import combine_messages, resolve_model
from .streaming import FINISH_STOP, ChunkEmitter
from .usage import estimate_usage

logger = logging.getLogger("opencode_bridge.service")

Sleep = Callable[[float], Awaitable[None]]


class BridgeService:
    """Wire the registry, poller, aggregator and emitter into chat endpoints."""

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        client: BackendClient | None = None,
        store: SessionStore | None = None,
        poll_sleep: Sleep | None = None,
        stream_sleep: Sleep | None = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._client: BackendClient = client or OpenCodeClient.from_config(self.config)
        self.registry = SessionRegistry(
            self._client,
            store=store,
            title=self.config.session_title,
            default_key=self.config.default_session_key,
            fallback=self.config.session_fallback,
        )
        self.poller = TurnPoller(
            self._client,
            interval_s=self.config.poll_interval_s,
            max_attempts=self.config.max_poll_attempts,
            sleep=poll_sleep,
        )
        self.aggregator = TurnAggregator(
            self._client,
            self.poller,
            include_user_messages=self.config.include_user_messages,
        )
        self.emitter = ChunkEmitter(
            chunk_size=self.config.chunk_size,
            delay_s=self.config.stream_delay_s,
            emit_role_frame=self.config.emit_role_frame,
            disconnect_check_s=self.config.disconnect_check_s,
            sleep=stream_sleep,
        )
        self._started = False

    @property
    def client(self) -> BackendClient:
        return self._client

    async def start(self) -> None:
        if self._started:
            return
        start = getattr(self._client, "start", None)
        if start is not None:
            await start()
        await self.registry.start()
        self._started = True
        logger.info("bridge_started", extra={"base_url": self.config.base_url})

    async def stop(self) -> None:
        if not self._started:
            return
        await self.registry.stop()
        self.aggregator.reset()
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()
        self._started = False
        logger.info("bridge_stopped")

    def _prepare(self, request: ChatCompletionRequest) -> tuple[str, ModelRef]:
        prompt = combine_messages(request.messages)
        if not prompt:
            raise RequestValidationError("messages must carry text content", param="messages")
        model = resolve_model(
            request.model,
            default_provider=self.config.default_provider,
            aliases=self.config.model_aliases,
        )
        return prompt, model

    async def _run_turn(self, request: ChatCompletionRequest, prompt: str, model: ModelRef) -> TurnResult:
        session_id = await self.registry.resolve(request.user)
        return await self.aggregator.run_turn(session_id, prompt, model)

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        prompt, model = self._prepare(request)
        result = await self._run_turn(request, prompt, model)
        usage = estimate_usage(request.messages, result.text)
        logger.info(
            "chat_completion",
            extra={
                "model": str(model),
                "session_id": result.session_id,
                "poll_state": result.state.value,
                "completion_tokens": usage.completion_tokens,
            },
        )
        return ChatCompletionResponse(
            model=request.model,
            choices=[
                Choice(
                    index=0,
                    message=ChatMessage(role="assistant", content=result.text),
                    finish_reason=FINISH_STOP,
                )
            ],
            usage=usage,
        )

    def stream(
        self,
        request: ChatCompletionRequest,
        *,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[bytes]:
        """Return the SSE byte stream for ``request``.

        Request validation happens here, before the first frame, so a bad
        request fails as a plain HTTP error rather than a stream.
        """

        prompt, model = self._prepare(request)
        completion_id = new_completion_id()

        async def _produce() -> str:
            result = await self._run_turn(request, prompt, model)
            return result.text

        logger.info("stream_started", extra={"completion_id": completion_id, "model": str(model)})
        return self.emitter.stream(
            completion_id=completion_id,
            model=request.model,
            produce=_produce,
            is_disconnected=is_disconnected,
        )

    async def list_models(self) -> ModelList:
        cards: list[ModelCard] = []
        seen: set[str] = set()
        try:
            providers = await self._client.list_providers()
        except BridgeError as exc:
            logger.warning("providers_unavailable", extra={"error": str(exc)})
            providers = None
        if providers is not None:
            for provider in providers.providers:
                for key, entry in provider.models.items():
                    model_id = f"{provider.id}/{entry.id or key}"
                    if model_id not in seen:
                        seen.add(model_id)
                        cards.append(ModelCard(id=model_id, owned_by=provider.id))
        for alias in self.config.model_aliases:
            if alias not in seen:
                seen.add(alias)
                cards.append(ModelCard(id=alias, owned_by=self.config.default_provider))
        return ModelList(data=cards)

    def health(self) -> HealthResponse:
        return HealthResponse(status="healthy", service=self.config.service_name)


__all__ = ["BridgeService"]
