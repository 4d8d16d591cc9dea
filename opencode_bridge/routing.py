from __future__ import annotations

from collections.abc import Iterable, Mapping

from .chat_models import ChatMessage
from .errors import RequestValidationError
from .models import ModelRef


def resolve_model(model: str, *, default_provider: str, aliases: Mapping[str, str] | None = None) -> ModelRef:
    """Map an OpenAI ``model`` field onto an OpenCode provider/model pair.

    ``"anthropic/claude-sonnet-4"`` splits on the first slash. A bare name uses
    ``default_provider`` and goes through ``aliases`` so stock OpenAI model
    names keep working; unknown names pass through unchanged.
    """

    name = model.strip()
    if not name:
        raise RequestValidationError("model must be non-empty", param="model")
    if "/" in name:
        provider_id, model_id = name.split("/", 1)
        if not provider_id or not model_id:
            raise RequestValidationError(f"model {model!r} must look like 'provider/model'", param="model")
        return ModelRef(provider_id=provider_id, model_id=model_id)
    model_id = (aliases or {}).get(name, name)
    return ModelRef(provider_id=default_provider, model_id=model_id)


def combine_messages(messages: Iterable[ChatMessage]) -> str:
    """Flatten a chat history into the single prompt OpenCode accepts."""

    lines = []
    for message in messages:
        content = message.text_content()
        if content is None:
            continue
        lines.append(f"[{message.role}]: {content}\n")
    return "".join(lines)


__all__ = ["combine_messages", "resolve_model"]
