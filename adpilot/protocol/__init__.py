"""Chat stream wire protocol: typed events and their SSE serialization."""
from adpilot.protocol.emitter import ProtocolSerializationError, SSESequencer, emit, parse_event
from adpilot.protocol.events import (
    EVENT_REGISTRY,
    TERMINAL_EVENT_TYPES,
    ChatEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    SourceUrlEvent,
    StartEvent,
    TextDeltaEvent,
    ToolInputAvailableEvent,
    ToolOutputAvailableEvent,
    ToolOutputErrorEvent,
)

__all__ = [
    "ProtocolSerializationError",
    "SSESequencer",
    "emit",
    "parse_event",
    "EVENT_REGISTRY",
    "TERMINAL_EVENT_TYPES",
    "ChatEvent",
    "ErrorEvent",
    "FinishEvent",
    "ReasoningDeltaEvent",
    "SourceUrlEvent",
    "StartEvent",
    "TextDeltaEvent",
    "ToolInputAvailableEvent",
    "ToolOutputAvailableEvent",
    "ToolOutputErrorEvent",
]
