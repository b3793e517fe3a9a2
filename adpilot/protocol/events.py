"""Chat stream event models: single source of truth for the SSE wire format.

Every frame the chat endpoint emits is an instance of a ``ChatEvent``
subclass. Type strings follow the UI-message stream vocabulary the web client
consumes (``text-delta``, ``tool-input-available``...).

Wire format rules:
  - All keys are camelCase (via CamelModel alias_generator)
  - Every event has ``type`` and ``seq`` (seq injected by the sequencer)
  - JSON serialization uses model_dump(by_alias=True, exclude_none=True)
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import ConfigDict, Field

from adpilot.models.base import CamelModel


class ChatEvent(CamelModel):
    """Base class for all stream events."""

    model_config = ConfigDict(extra="forbid")

    type: str
    seq: int = -1


class StartEvent(ChatEvent):
    """First frame of every turn."""

    type: Literal["start"] = "start"
    message_id: str
    conversation_id: str


class TextDeltaEvent(ChatEvent):
    type: Literal["text-delta"] = "text-delta"
    delta: str


class ReasoningDeltaEvent(ChatEvent):
    type: Literal["reasoning-delta"] = "reasoning-delta"
    delta: str


class ToolInputAvailableEvent(ChatEvent):
    """The model called a tool.

    ``requires_confirmation`` tools are not executed server-side: the client
    asks the user, performs the action and reports the result next turn.
    """

    type: Literal["tool-input-available"] = "tool-input-available"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    requires_confirmation: bool = False


class ToolOutputAvailableEvent(ChatEvent):
    type: Literal["tool-output-available"] = "tool-output-available"
    tool_call_id: str
    output: dict[str, Any] = Field(default_factory=dict)


class ToolOutputErrorEvent(ChatEvent):
    """A tool call failed. Recoverable: the stream continues."""

    type: Literal["tool-output-error"] = "tool-output-error"
    tool_call_id: str
    tool_name: str
    error_text: str
    error_kind: str


class SourceUrlEvent(ChatEvent):
    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None


class FinishEvent(ChatEvent):
    """Terminal frame of a successful turn, carrying the produced messages."""

    type: Literal["finish"] = "finish"
    conversation_id: str
    messages: list[dict[str, Any]]
    finish_reason: str | None = None
    degraded_history: bool = False


class ErrorEvent(ChatEvent):
    """Terminal frame of a failed turn."""

    type: Literal["error"] = "error"
    error_text: str
    code: str | None = None


EVENT_REGISTRY: dict[str, type[ChatEvent]] = {
    "start": StartEvent,
    "text-delta": TextDeltaEvent,
    "reasoning-delta": ReasoningDeltaEvent,
    "tool-input-available": ToolInputAvailableEvent,
    "tool-output-available": ToolOutputAvailableEvent,
    "tool-output-error": ToolOutputErrorEvent,
    "source-url": SourceUrlEvent,
    "finish": FinishEvent,
    "error": ErrorEvent,
}

TERMINAL_EVENT_TYPES = frozenset({"finish", "error"})
