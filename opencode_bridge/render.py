"""Render OpenCode message parts as markdown-ish chat text.

Every function here is pure: the same part always yields the same text.
Dispatch happens on the ``type`` discriminant of a part and on the ``status``
discriminant of a tool state, so adding a variant means adding one entry to
the matching table below.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .errors import RenderingError
from .models import (
    FilePart,
    Message,
    Part,
    PatchPart,
    SnapshotPart,
    TextPart,
    ToolPart,
    ToolStateCompleted,
    ToolStateError,
    ToolStatePending,
    ToolStateRunning,
)

logger = logging.getLogger("opencode_bridge.render")

CONTENT_LIMIT = 500
COMMAND_KEYS = frozenset({"command", "cmd"})
PATH_KEYS = frozenset({"path", "file", "file_path"})
FENCE = "```"


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _with_newline(text: str) -> str:
    return text if text.endswith("\n") else f"{text}\n"


def render_input(tool_input: Mapping[str, Any] | None) -> str:
    """Render a tool input map, one line per key."""

    if not tool_input:
        return ""
    lines: list[str] = []
    for key, value in tool_input.items():
        if key in COMMAND_KEYS:
            lines.append(f"$ {_format_value(value)}\n")
        elif key in PATH_KEYS:
            lines.append(f"File: {_format_value(value)}\n")
        elif key == "content" and isinstance(value, str):
            if len(value) <= CONTENT_LIMIT:
                lines.append(_with_newline(value))
            else:
                lines.append(f"[Content truncated: {len(value)} chars]\n")
        else:
            lines.append(f"{key}: {_format_value(value)}\n")
    return "".join(lines)


def _input_block(tool_input: Mapping[str, Any] | None) -> str:
    rendered = render_input(tool_input)
    return f"Input:\n{rendered}" if rendered else ""


def _render_pending(_state: ToolStatePending) -> str:
    return "Status: Pending\n"


def _render_running(state: ToolStateRunning) -> str:
    text = "Status: Running\n"
    if state.title:
        text += f"Title: {state.title}\n"
    return text


def _render_completed(state: ToolStateCompleted) -> str:
    text = "Status: Completed\n"
    if state.title:
        text += f"Title: {state.title}\n"
    text += _input_block(state.input)
    if state.output is not None:
        text += f"Output:\n{_with_newline(state.output)}"
    return text


def _render_error(state: ToolStateError) -> str:
    text = "Status: Error\n"
    if state.error:
        text += f"Error: {state.error}\n"
    text += _input_block(state.input)
    return text


_TOOL_STATE_RENDERERS: dict[str, Callable[[Any], str]] = {
    "pending": _render_pending,
    "running": _render_running,
    "completed": _render_completed,
    "error": _render_error,
}


def _render_text(part: TextPart) -> str:
    return f"{part.text}\n\n"


def _render_tool(part: ToolPart) -> str:
    header = f"\n### Tool Execution: {part.tool}\n"
    if part.state is None:
        return header
    renderer = _TOOL_STATE_RENDERERS.get(part.state.status)
    if renderer is None:
        raise RenderingError(f"unknown tool state {part.state.status!r}")
    return f"{header}{FENCE}\n{renderer(part.state)}{FENCE}\n\n"


def _render_file(part: FilePart) -> str:
    name = part.filename or part.url or "(unnamed)"
    text = f"\n### File: {name}\n"
    if part.mime:
        text += f"Type: {part.mime}\n"
    return f"{text}\n"


def _render_snapshot(part: SnapshotPart) -> str:
    return f"\n### Code Snapshot\n{FENCE}\n{_with_newline(part.snapshot)}{FENCE}\n\n"


def _render_patch(part: PatchPart) -> str:
    files = "".join(f"- {path}\n" for path in part.files)
    return f"\n### Files Modified\n{files}\n"


_PART_RENDERERS: dict[str, Callable[[Any], str]] = {
    "text": _render_text,
    "tool": _render_tool,
    "file": _render_file,
    "snapshot": _render_snapshot,
    "patch": _render_patch,
}


def render_part(part: Part) -> str:
    """Render one part; unknown or broken parts become an empty string."""

    part_type = getattr(part, "type", None)
    renderer = _PART_RENDERERS.get(part_type) if isinstance(part_type, str) else None
    if renderer is None:
        return ""
    try:
        return renderer(part)
    except Exception as exc:
        logger.warning(
            "part_render_failed",
            extra={"part_type": part_type, "part_id": getattr(part, "id", None), "error": str(exc)},
        )
        return ""


def render_message(message: Message) -> str:
    return "".join(render_part(part) for part in message.parts)


def render_messages(messages: Iterable[Message]) -> str:
    return "".join(render_message(message) for message in messages)


__all__ = ["CONTENT_LIMIT", "render_input", "render_message", "render_messages", "render_part"]
