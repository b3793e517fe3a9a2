"""
Message history loading and validation.

The model sees the most recent ``settings.history_window`` persisted messages
plus the inbound one. Stored history can go stale against the current tool
set (a tool renamed, a schema tightened), so it is validated every turn. A
history that fails validation, or cannot be read at all, degrades to the new
message alone: the user still gets an answer, just without context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.config import settings
from adpilot.core.tools import ToolDescriptor, build_tool_registry
from adpilot.core.tools.validation import ValidationError, validate_tool_input
from adpilot.services.conversations import load_recent_messages, to_ui_message
from adpilot.services.conversations.formatting import is_tool_part, tool_name_of

logger = logging.getLogger(__name__)

_ROLES = frozenset({"user", "assistant", "system"})
_TOOL_STATES = frozenset({"input-streaming", "input-available", "output-available", "output-error"})
_VALIDATED_INPUT_STATES = frozenset({"input-available", "output-available"})


@dataclass
class HistoryResult:
    messages: list[dict[str, Any]]
    degraded: bool = False
    errors: list[ValidationError] = field(default_factory=list)


def _validate_tool_part(
    path: str,
    part: Mapping[str, Any],
    tools: Mapping[str, ToolDescriptor],
    catalog: Mapping[str, ToolDescriptor],
) -> list[ValidationError]:
    errors: list[ValidationError] = []
    name = tool_name_of(part)
    state = part.get("state")

    if not part.get("toolCallId"):
        errors.append(ValidationError(path, f"Tool part '{name}' has no toolCallId", "MISSING_TOOL_CALL_ID"))
    if state is not None and state not in _TOOL_STATES:
        errors.append(ValidationError(path, f"Unknown tool state '{state}'", "INVALID_TOOL_STATE"))

    if name not in catalog:
        # A failed call to a tool that never existed is legitimate history.
        if state != "output-error":
            errors.append(ValidationError(path, f"Unknown tool '{name}'", "UNKNOWN_TOOL"))
        return errors

    active = tools.get(name)
    if active is not None and state in _VALIDATED_INPUT_STATES:
        tool_input = part.get("input")
        if not isinstance(tool_input, Mapping):
            errors.append(ValidationError(f"{path}.input", "Tool input must be an object", "INVALID_TOOL_INPUT"))
        else:
            for err in validate_tool_input(active, tool_input):
                errors.append(ValidationError(f"{path}.input.{err.field}", err.message, err.code))
    return errors


def validate_ui_messages(
    messages: list[dict[str, Any]],
    tools: Mapping[str, ToolDescriptor],
) -> list[ValidationError]:
    """Check message shapes and tool parts against the turn's tool set.

    Tool parts must carry a call id and a known state and name a tool in the
    catalog (failed calls excepted); inputs of tools offered this turn must
    satisfy their schema.
    """
    catalog = build_tool_registry()
    errors: list[ValidationError] = []
    seen_ids: set[str] = set()

    for i, message in enumerate(messages):
        path = f"messages[{i}]"
        msg_id = message.get("id")
        if not isinstance(msg_id, str) or not msg_id:
            errors.append(ValidationError(f"{path}.id", "Message id is required", "MISSING_ID"))
        elif msg_id in seen_ids:
            errors.append(ValidationError(f"{path}.id", f"Duplicate message id '{msg_id}'", "DUPLICATE_ID"))
        else:
            seen_ids.add(msg_id)

        if message.get("role") not in _ROLES:
            errors.append(ValidationError(f"{path}.role", f"Invalid role {message.get('role')!r}", "INVALID_ROLE"))

        parts = message.get("parts")
        if not isinstance(parts, list):
            errors.append(ValidationError(f"{path}.parts", "Parts must be a list", "INVALID_PARTS"))
            continue

        for j, part in enumerate(parts):
            part_path = f"{path}.parts[{j}]"
            if not isinstance(part, Mapping) or not isinstance(part.get("type"), str):
                errors.append(ValidationError(part_path, "Part must be an object with a type", "INVALID_PART"))
                continue
            if part["type"] == "text" and not isinstance(part.get("text"), str):
                errors.append(ValidationError(part_path, "Text part needs a string 'text'", "INVALID_PART"))
            elif is_tool_part(part):
                errors.extend(_validate_tool_part(part_path, part, tools, catalog))

    return errors


async def load_validated_history(
    db: AsyncSession,
    conversation_id: str,
    new_message: dict[str, Any],
    tools: Mapping[str, ToolDescriptor],
    window: Optional[int] = None,
) -> HistoryResult:
    """Recent persisted history plus ``new_message``, validated.

    A retried turn re-sends a message id that may already be stored; the
    stored copy is replaced by the inbound one.
    """
    limit = window or settings.history_window
    short_id = conversation_id[:8]

    try:
        rows = await load_recent_messages(db, conversation_id, limit)
    except Exception as e:
        logger.warning(f"History unavailable for conversation {short_id}, answering from the new message only: {e}")
        return HistoryResult(messages=[new_message], degraded=True)

    prior = [to_ui_message(row) for row in rows if row.id != new_message.get("id")]
    messages = prior + [new_message]

    errors = validate_ui_messages(messages, tools)
    if errors:
        logger.warning(
            f"History validation failed for conversation {short_id} "
            f"({len(errors)} error(s)); answering from the new message only"
        )
        for err in errors[:10]:
            logger.warning(f"  {err.code} {err}")
        return HistoryResult(messages=[new_message], degraded=True, errors=errors)

    logger.debug(f"Loaded {len(prior)} prior message(s) for conversation {short_id}")
    return HistoryResult(messages=messages)
