"""SSE serialization for chat stream events.

``emit(event)`` turns a typed event into a ``data: {json}\\n\\n`` frame;
``SSESequencer`` stamps a per-stream monotonic ``seq`` on each frame;
``parse_event`` is the inverse of ``emit`` for tests and consumers.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from adpilot.protocol.events import EVENT_REGISTRY, ChatEvent


class ProtocolSerializationError(Exception):
    """Raised when an event dict fails protocol validation."""


def emit(event: ChatEvent) -> str:
    """Serialize a ChatEvent to SSE wire format.

    Raises TypeError for non-ChatEvent arguments and ValueError for
    unregistered event types.
    """
    if not isinstance(event, ChatEvent):
        raise TypeError(f"emit() requires a ChatEvent, got {type(event).__name__}.")
    if event.type not in EVENT_REGISTRY:
        raise ValueError(f"Unknown event type '{event.type}'.")

    data = event.model_dump(mode="json", by_alias=True, exclude_none=True)
    return f"data: {json.dumps(data, separators=(',', ':'), ensure_ascii=False)}\n\n"


def parse_event(data: Mapping[str, object]) -> ChatEvent:
    """Deserialize a wire-format dict back into the concrete ChatEvent subclass."""
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ProtocolSerializationError("Event dict missing 'type' field")
    model = EVENT_REGISTRY.get(event_type)
    if model is None:
        raise ProtocolSerializationError(f"Unknown event type '{event_type}'")
    try:
        return model.model_validate(dict(data))
    except Exception as e:
        raise ProtocolSerializationError(f"Malformed '{event_type}' event: {e}") from e


class SSESequencer:
    """Injects a monotonic ``seq`` counter into SSE ``data:`` frames.

    One instance per stream. The first frame gets seq 0. SSE comments
    (``: heartbeat``) pass through unchanged.
    """

    def __init__(self) -> None:
        self._seq: int = -1

    def __call__(self, event_str: str) -> str:
        if not event_str.startswith("data: "):
            return event_str
        self._seq += 1
        data = json.loads(event_str[6:].strip())
        data["seq"] = self._seq
        return f"data: {json.dumps(data, separators=(',', ':'), ensure_ascii=False)}\n\n"

    @property
    def count(self) -> int:
        return self._seq
