"""Wire models for the OpenCode server API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class OpenCodeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ModelRef(OpenCodeModel):
    provider_id: str = Field(alias="providerID")
    model_id: str = Field(alias="modelID")

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


class TimeInfo(OpenCodeModel):
    created: int | None = None
    updated: int | None = None
    completed: int | None = None
    start: int | None = None
    end: int | None = None


class Session(OpenCodeModel):
    id: str
    title: str | None = None
    version: str | None = None
    parent_id: str | None = Field(default=None, alias="parentID")
    time: TimeInfo | None = None


class ToolStatePending(OpenCodeModel):
    status: Literal["pending"] = "pending"


class ToolStateRunning(OpenCodeModel):
    status: Literal["running"] = "running"
    input: dict[str, Any] | None = None
    title: str | None = None
    metadata: dict[str, Any] | None = None
    time: TimeInfo | None = None


class ToolStateCompleted(OpenCodeModel):
    status: Literal["completed"] = "completed"
    input: dict[str, Any] | None = None
    output: str | None = None
    title: str | None = None
    metadata: dict[str, Any] | None = None
    time: TimeInfo | None = None


class ToolStateError(OpenCodeModel):
    status: Literal["error"] = "error"
    input: dict[str, Any] | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None
    time: TimeInfo | None = None


ToolState = Annotated[
    Union[ToolStatePending, ToolStateRunning, ToolStateCompleted, ToolStateError],
    Field(discriminator="status"),
]


class PartBase(OpenCodeModel):
    id: str | None = None
    session_id: str | None = Field(default=None, alias="sessionID")
    message_id: str | None = Field(default=None, alias="messageID")


class TextPart(PartBase):
    type: Literal["text"] = "text"
    text: str = ""
    synthetic: bool | None = None


class ToolPart(PartBase):
    type: Literal["tool"] = "tool"
    tool: str
    call_id: str | None = Field(default=None, alias="callID")
    state: ToolState | None = None


class FilePart(PartBase):
    type: Literal["file"] = "file"
    filename: str | None = None
    mime: str | None = None
    url: str | None = None


class SnapshotPart(PartBase):
    type: Literal["snapshot"] = "snapshot"
    snapshot: str = ""


class PatchPart(PartBase):
    type: Literal["patch"] = "patch"
    hash: str | None = None
    files: list[str] = Field(default_factory=list)


class UnknownPart(PartBase):
    """Placeholder for part variants the bridge does not understand.

    OpenCode adds part types over time (``step-start``, ``step-finish``,
    ``reasoning`` ...) and a known type may arrive malformed. Both land here
    so a single odd part never invalidates the whole message.
    """

    type: Literal["unknown"] = "unknown"
    original_type: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


KnownPart = Annotated[
    Union[TextPart, ToolPart, FilePart, SnapshotPart, PatchPart],
    Field(discriminator="type"),
]
Part = Union[TextPart, ToolPart, FilePart, SnapshotPart, PatchPart, UnknownPart]

_KNOWN_PART = TypeAdapter(KnownPart)


def parse_part(payload: Any) -> Part:
    """Validate one raw part, degrading to :class:`UnknownPart` on failure."""

    if isinstance(payload, PartBase):
        return payload  # type: ignore[return-value]
    if not isinstance(payload, Mapping):
        return UnknownPart(raw={"value": payload})
    try:
        return _KNOWN_PART.validate_python(payload)
    except ValidationError:
        original = payload.get("type")
        return UnknownPart(
            id=payload.get("id") if isinstance(payload.get("id"), str) else None,
            original_type=original if isinstance(original, str) else None,
            raw=dict(payload),
        )


class MessageError(OpenCodeModel):
    name: str | None = None
    message: str | None = None
    data: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class MessageInfo(OpenCodeModel):
    id: str
    session_id: str | None = Field(default=None, alias="sessionID")
    role: str = "assistant"
    status: str | None = None
    parent_id: str | None = Field(default=None, alias="parentID")
    provider_id: str | None = Field(default=None, alias="providerID")
    model_id: str | None = Field(default=None, alias="modelID")
    time: TimeInfo | None = None
    error: MessageError | None = None


class Message(OpenCodeModel):
    info: MessageInfo
    parts: list[Part] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _lenient_parts(cls, value: Any) -> list[Part]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("parts must be a list")
        return [parse_part(item) for item in value]

    @property
    def id(self) -> str:
        return self.info.id

    @property
    def role(self) -> str:
        return self.info.role


class ProviderModel(OpenCodeModel):
    id: str
    name: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Provider(OpenCodeModel):
    id: str
    name: str | None = None
    models: dict[str, ProviderModel] = Field(default_factory=dict)


class ProvidersResponse(OpenCodeModel):
    providers: list[Provider] = Field(default_factory=list)
    default: dict[str, str] = Field(default_factory=dict)


class PromptRequest(OpenCodeModel):
    model: ModelRef | None = None
    agent: str | None = None
    system: str | None = None
    parts: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def of_text(cls, text: str, model: ModelRef | None = None, *, agent: str | None = None) -> PromptRequest:
        return cls(model=model, agent=agent, parts=[{"type": "text", "text": text}])

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "FilePart",
    "Message",
    "MessageError",
    "MessageInfo",
    "ModelRef",
    "Part",
    "PatchPart",
    "PromptRequest",
    "Provider",
    "ProviderModel",
    "ProvidersResponse",
    "Session",
    "SnapshotPart",
    "TextPart",
    "TimeInfo",
    "ToolPart",
    "ToolState",
    "ToolStateCompleted",
    "ToolStateError",
    "ToolStatePending",
    "ToolStateRunning",
    "UnknownPart",
    "parse_part",
]
