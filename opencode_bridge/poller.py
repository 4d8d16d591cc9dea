"""Wait for an OpenCode turn to settle by polling its message."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from .client import BackendClient
from .errors import BridgeError
from .models import Message

logger = logging.getLogger("opencode_bridge.poller")

INCOMPLETE_TOOL_STATES = frozenset({"pending", "running"})


class PollState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    SETTLED = "settled"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


def is_settled(message: Message) -> bool:
    """True when no tool part of ``message`` is still pending or running."""

    for part in message.parts:
        if part.type != "tool" or part.state is None:
            continue
        if part.state.status in INCOMPLETE_TOOL_STATES:
            return False
    return True


@dataclass(slots=True)
class PollResult:
    message: Message
    state: PollState
    fetches: int = 0
    error: BridgeError | None = None

    @property
    def timed_out(self) -> bool:
        return self.state is PollState.TIMED_OUT

    @property
    def settled(self) -> bool:
        return self.state is PollState.SETTLED


class TurnPoller:
    """Drive ``SUBMITTED -> POLLING -> SETTLED | TIMED_OUT | ABORTED``.

    The wait is best effort. Exhausting ``max_attempts`` or a failed fetch
    returns the newest snapshot instead of raising, so callers always get
    whatever content settled so far.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        interval_s: float = 1.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self._interval_s = interval_s
        self._max_attempts = max_attempts
        self._sleep = sleep or asyncio.sleep

    async def settle(self, session_id: str, message: Message) -> PollResult:
        state = PollState.SUBMITTED
        latest = message
        fetches = 0
        while True:
            if is_settled(latest):
                if state is not PollState.SUBMITTED:
                    logger.info(
                        "poll_settled",
                        extra={"session_id": session_id, "message_id": latest.id, "fetches": fetches},
                    )
                return PollResult(message=latest, state=PollState.SETTLED, fetches=fetches)
            if fetches >= self._max_attempts:
                logger.warning(
                    "poll_timed_out",
                    extra={"session_id": session_id, "message_id": latest.id, "fetches": fetches},
                )
                return PollResult(message=latest, state=PollState.TIMED_OUT, fetches=fetches)
            state = PollState.POLLING
            await self._sleep(self._interval_s)
            fetches += 1
            logger.debug(
                "poll_attempt",
                extra={"session_id": session_id, "attempt": fetches, "max_attempts": self._max_attempts},
            )
            try:
                latest = await self._client.get_message(session_id, message.id)
            except BridgeError as exc:
                logger.warning(
                    "poll_aborted",
                    extra={"session_id": session_id, "message_id": message.id, "error": str(exc)},
                )
                return PollResult(message=latest, state=PollState.ABORTED, fetches=fetches, error=exc)


__all__ = ["INCOMPLETE_TOOL_STATES", "PollResult", "PollState", "TurnPoller", "is_settled"]
