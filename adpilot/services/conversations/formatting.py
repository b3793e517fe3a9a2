"""Message formatting: storage <-> UI shape, model context, titles."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping

from adpilot.db.models import ConversationMessage

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 50_000
DEFAULT_TITLE = "New campaign chat"

_COMPLETE_TOOL_STATES = frozenset({"output-available", "output-error"})


def is_tool_part(part: Mapping[str, Any]) -> bool:
    part_type = part.get("type")
    return isinstance(part_type, str) and (part_type.startswith("tool-") or part_type == "dynamic-tool")


def tool_name_of(part: Mapping[str, Any]) -> str:
    """``tool-editCopy`` -> ``editCopy``; dynamic tools carry ``toolName``."""
    part_type = str(part.get("type", ""))
    if part_type == "dynamic-tool":
        return str(part.get("toolName", ""))
    return part_type[len("tool-"):]


def is_complete_tool_part(part: Mapping[str, Any]) -> bool:
    return (
        "output" in part
        or "result" in part
        or part.get("state") in _COMPLETE_TOOL_STATES
    )


def text_of(parts: Iterable[Mapping[str, Any]]) -> str:
    return "".join(
        p["text"] for p in parts
        if p.get("type") == "text" and isinstance(p.get("text"), str)
    )


def has_visible_output(parts: Iterable[Mapping[str, Any]]) -> bool:
    """True when the parts carry non-blank text or at least one tool part."""
    parts = list(parts)
    return bool(text_of(parts).strip()) or any(is_tool_part(p) for p in parts)


def extract_content(parts: Iterable[Mapping[str, Any]]) -> str:
    """Flattened, searchable text for the ``content`` column. Never empty."""
    parts = list(parts)
    content = text_of(parts).strip()
    if not content:
        tools = [tool_name_of(p) for p in parts if is_tool_part(p)]
        if tools:
            content = "Tool execution: " + ", ".join(f"[Tool: {name}]" for name in tools)
    if len(content) > MAX_CONTENT_CHARS:
        content = content[:MAX_CONTENT_CHARS]
    return content or " "


def sanitize_stored_parts(parts: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Drop tool parts that cannot be replayed (no call id, or never completed)."""
    cleaned: list[dict[str, Any]] = []
    for part in parts:
        if not isinstance(part, Mapping):
            continue
        if is_tool_part(part):
            if not part.get("toolCallId") or not is_complete_tool_part(part):
                logger.debug(f"Dropping incomplete stored tool part {part.get('type')}")
                continue
        cleaned.append(dict(part))
    return cleaned


def to_ui_message(row: ConversationMessage) -> dict[str, Any]:
    """Persisted row -> client message shape."""
    message: dict[str, Any] = {
        "id": row.id,
        "role": row.role,
        "parts": sanitize_stored_parts(row.parts or []),
    }
    if row.extra_metadata:
        message["metadata"] = row.extra_metadata
    return message


def _sanitize_tool_call_id(tool_call_id: str) -> str:
    """Providers require tool call ids matching ^[a-zA-Z0-9_-]+$."""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", tool_call_id)


def _tool_result_content(part: Mapping[str, Any]) -> str:
    if part.get("state") == "output-error":
        return json.dumps({"error": part.get("errorText") or "Tool failed"})
    output = part.get("output", part.get("result"))
    return json.dumps(output if output is not None else {"status": "ok"})


def to_model_messages(messages: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """UI messages -> OpenAI chat messages.

    Assistant tool parts become ``tool_calls`` followed by one ``tool`` message
    per completed call. Calls still awaiting output are omitted: providers
    reject an assistant tool call without a matching result.
    """
    out: list[dict[str, Any]] = []
    for message in messages:
        role = message.get("role")
        parts = [p for p in message.get("parts") or [] if isinstance(p, Mapping)]
        text = text_of(parts)

        if role in ("user", "system"):
            if text.strip():
                out.append({"role": role, "content": text})
            continue
        if role != "assistant":
            continue

        tool_calls: list[dict[str, Any]] = []
        results: list[dict[str, Any]] = []
        for part in parts:
            if not is_tool_part(part) or not part.get("toolCallId") or not is_complete_tool_part(part):
                continue
            call_id = _sanitize_tool_call_id(str(part["toolCallId"]))
            tool_calls.append({
                "id": call_id,
                "type": "function",
                "function": {
                    "name": tool_name_of(part),
                    "arguments": json.dumps(part.get("input") or {}),
                },
            })
            results.append({"role": "tool", "tool_call_id": call_id, "content": _tool_result_content(part)})

        if not text.strip() and not tool_calls:
            continue
        entry: dict[str, Any] = {"role": "assistant", "content": text or None}
        if tool_calls:
            entry["tool_calls"] = tool_calls
        out.append(entry)
        out.extend(results)
    return out


def generate_title_from_prompt(prompt: str, max_length: int = 50) -> str:
    """Generate a concise title from a user prompt."""
    title = " ".join(prompt.split())

    prefixes = [
        "can you ", "could you ", "please ", "i want to ", "i need to ",
        "help me ", "i'd like to ", "let's ", "create a ", "make a ",
    ]
    for prefix in prefixes:
        if title.lower().startswith(prefix):
            title = title[len(prefix):]
            break

    title = title[0].upper() + title[1:] if title else title

    if len(title) > max_length:
        period_idx = title[:max_length].rfind(".")
        if period_idx > max_length // 2:
            title = title[:period_idx + 1]
        else:
            space_idx = title[:max_length].rfind(" ")
            title = (title[:space_idx] + "...") if space_idx > 0 else (title[:max_length] + "...")

    return title


def generate_title_from_messages(messages: Iterable[Mapping[str, Any]]) -> str:
    """Title from the first user message with text, else a default."""
    for message in messages:
        if message.get("role") != "user":
            continue
        text = text_of(message.get("parts") or []).strip()
        if text:
            return generate_title_from_prompt(text) or DEFAULT_TITLE
    return DEFAULT_TITLE
