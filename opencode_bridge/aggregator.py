"""Collect everything an agent produced for one submitted prompt."""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Sequence
from dataclasses import dataclass

from .client import BackendClient
from .errors import BridgeError
from .models import Message, ModelRef
from .poller import PollResult, PollState, TurnPoller
from .render import render_messages

logger = logging.getLogger("opencode_bridge.aggregator")


@dataclass(slots=True)
class TurnResult:
    session_id: str
    messages: list[Message]
    text: str
    poll: PollResult

    @property
    def state(self) -> PollState:
        return self.poll.state

    @property
    def timed_out(self) -> bool:
        return self.poll.timed_out


def select_new_messages(
    after: Sequence[Message],
    before_count: int,
    settled: Message,
    *,
    include_user_messages: bool = True,
) -> list[Message]:
    """Pick the messages a turn appended, in session order.

    Everything at index ``>= before_count`` belongs to the turn, which picks up
    follow-on messages the agent chained on its own. The settled reply is
    appended when the re-fetch does not show it yet.
    """

    selected = list(after[before_count:])
    if all(message.id != settled.id for message in selected):
        selected.append(settled)
    if not include_user_messages:
        selected = [message for message in selected if message.role != "user"]
    return selected


class TurnAggregator:
    def __init__(
        self,
        client: BackendClient,
        poller: TurnPoller,
        *,
        include_user_messages: bool = True,
    ) -> None:
        self._client = client
        self._poller = poller
        self._include_user_messages = include_user_messages
        self._session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        # Entries vanish once no turn holds or waits on the lock.
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    def reset(self) -> None:
        self._session_locks.clear()

    async def run_turn(self, session_id: str, prompt: str, model: ModelRef | None = None) -> TurnResult:
        """Submit ``prompt`` and return the rendered output of the whole turn.

        Turns on one session run one at a time so the index window taken
        before submission belongs to this turn alone. Failures before or
        during submission propagate; anything after is best effort.
        """

        async with self._lock_for(session_id):
            before_count = len(await self._client.get_messages(session_id))
            submitted = await self._client.send_prompt(session_id, prompt, model)
            poll = await self._poller.settle(session_id, submitted)
            after = await self._refetch(session_id)
        messages = select_new_messages(
            after if after is not None else [],
            before_count if after is not None else 0,
            poll.message,
            include_user_messages=self._include_user_messages,
        )
        text = render_messages(messages)
        logger.info(
            "turn_aggregated",
            extra={
                "session_id": session_id,
                "before_count": before_count,
                "message_count": len(messages),
                "poll_state": poll.state.value,
                "chars": len(text),
            },
        )
        return TurnResult(session_id=session_id, messages=messages, text=text, poll=poll)

    async def _refetch(self, session_id: str) -> list[Message] | None:
        try:
            return await self._client.get_messages(session_id)
        except BridgeError as exc:
            logger.warning("turn_refetch_failed", extra={"session_id": session_id, "error": str(exc)})
            return None


__all__ = ["TurnAggregator", "TurnResult", "select_new_messages"]
