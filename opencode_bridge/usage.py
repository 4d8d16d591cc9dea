"""Approximate token accounting (about four characters per token)."""

from __future__ import annotations

import math
from collections.abc import Iterable

from .chat_models import ChatMessage, Usage

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_prompt_tokens(messages: Iterable[ChatMessage]) -> int:
    return sum(estimate_tokens(message.text_content()) for message in messages)


def estimate_usage(messages: Iterable[ChatMessage], completion: str) -> Usage:
    prompt_tokens = estimate_prompt_tokens(messages)
    completion_tokens = estimate_tokens(completion)
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


__all__ = ["CHARS_PER_TOKEN", "estimate_prompt_tokens", "estimate_tokens", "estimate_usage"]
