"""Slice rendered turn output into ``chat.completion.chunk`` SSE frames."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any

from .chat_models import ChatCompletionChunk, ChunkChoice, ChunkDelta
from .errors import BridgeError

logger = logging.getLogger("opencode_bridge.streaming")

DONE_SENTINEL = b"data: [DONE]\n\n"
ASSISTANT_ROLE = "assistant"
FINISH_STOP = "stop"


@dataclass(slots=True, frozen=True)
class StreamFrame:
    id: str
    role: str | None = None
    delta: str | None = None
    finish_reason: str | None = None

    def to_chunk(self, *, model: str, created: int) -> ChatCompletionChunk:
        choice = ChunkChoice(
            index=0,
            delta=ChunkDelta(role=self.role, content=self.delta),
            finish_reason=self.finish_reason,
        )
        return ChatCompletionChunk(id=self.id, created=created, model=model, choices=[choice])


def split_windows(text: str, size: int) -> list[str]:
    if size < 1:
        raise ValueError("size must be >= 1")
    return [text[start : start + size] for start in range(0, len(text), size)]


def _encode_data(payload: Any) -> bytes:
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n".encode()


def encode_chunk(chunk: ChatCompletionChunk) -> bytes:
    return _encode_data(chunk.model_dump(exclude_none=True))


def encode_error(exc: BaseException) -> bytes:
    if isinstance(exc, BridgeError):
        return _encode_data(exc.to_payload())
    message = str(exc) or exc.__class__.__name__
    return _encode_data({"error": {"message": message, "type": "internal_error"}})


class ChunkEmitter:
    """Turn a finished text into the frame sequence of one streamed reply.

    The sequence is: optional role frame, one content frame per ``chunk_size``
    characters, a ``stop`` finish frame, then ``[DONE]``. A failure swaps the
    finish frame for an error frame; ``[DONE]`` always closes the stream.
    """

    def __init__(
        self,
        *,
        chunk_size: int = 50,
        delay_s: float = 0.02,
        emit_role_frame: bool = True,
        disconnect_check_s: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if disconnect_check_s <= 0:
            raise ValueError("disconnect_check_s must be > 0")
        self._chunk_size = chunk_size
        self._delay_s = delay_s
        self._emit_role_frame = emit_role_frame
        self._disconnect_check_s = disconnect_check_s
        self._sleep = sleep or asyncio.sleep

    def opening_frame(self, completion_id: str) -> StreamFrame | None:
        if not self._emit_role_frame:
            return None
        return StreamFrame(id=completion_id, role=ASSISTANT_ROLE)

    def frames(self, completion_id: str, text: str) -> Iterator[StreamFrame]:
        """Yield the content windows of ``text``, then the finish frame."""

        for window in split_windows(text, self._chunk_size):
            yield StreamFrame(id=completion_id, delta=window)
        yield StreamFrame(id=completion_id, finish_reason=FINISH_STOP)

    async def _await_produce(
        self,
        task: asyncio.Future[str],
        gone: Callable[[], Awaitable[bool]] | None,
    ) -> bool:
        """Wait for ``task``; cancel it and return False once the consumer is gone."""

        if gone is None:
            await asyncio.wait({task})
            return True
        while not task.done():
            await asyncio.wait({task}, timeout=self._disconnect_check_s)
            if task.done():
                break
            if await gone():
                task.cancel()
                await asyncio.wait({task})
                return False
        return True

    async def stream(
        self,
        *,
        completion_id: str,
        model: str,
        produce: Callable[[], Awaitable[str]],
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> AsyncIterator[bytes]:
        """Yield encoded frames for the text returned by ``produce``.

        ``produce`` runs as a task once the role frame is out. While it runs,
        ``is_disconnected`` is checked every ``disconnect_check_s`` seconds. A
        gone consumer, or closing this generator, cancels the task and ends the
        stream with no further frames.
        """

        created = int(time.time())

        async def _gone() -> bool:
            if is_disconnected is None:
                return False
            if await is_disconnected():
                logger.info("stream_disconnected", extra={"completion_id": completion_id})
                return True
            return False

        opening = self.opening_frame(completion_id)
        if opening is not None:
            yield encode_chunk(opening.to_chunk(model=model, created=created))

        task = asyncio.ensure_future(produce())
        try:
            if not await self._await_produce(task, _gone if is_disconnected is not None else None):
                return
            text = task.result()
        except Exception as exc:
            logger.warning(
                "stream_failed",
                extra={"completion_id": completion_id, "stage": "produce", "error": str(exc)},
            )
            yield encode_error(exc)
            yield DONE_SENTINEL
            return
        finally:
            if not task.done():
                task.cancel()

        try:
            for index, frame in enumerate(self.frames(completion_id, text)):
                if index and self._delay_s > 0:
                    await self._sleep(self._delay_s)
                if await _gone():
                    return
                yield encode_chunk(frame.to_chunk(model=model, created=created))
        except Exception as exc:
            logger.warning(
                "stream_failed",
                extra={"completion_id": completion_id, "stage": "emit", "error": str(exc)},
            )
            yield encode_error(exc)
            yield DONE_SENTINEL
            return
        yield DONE_SENTINEL


__all__ = [
    "ASSISTANT_ROLE",
    "ChunkEmitter",
    "DONE_SENTINEL",
    "FINISH_STOP",
    "StreamFrame",
    "encode_chunk",
    "encode_error",
    "split_windows",
]
