"""Conversation summarization: the long-range memory behind the bounded history window."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.db.models import ConversationMessage
from adpilot.services.conversations.crud import merge_conversation_metadata
from adpilot.services.conversations.formatting import is_tool_part, text_of, tool_name_of
from adpilot.services.conversations.messages import load_all_messages, lock_conversation

logger = logging.getLogger(__name__)

SUMMARY_KEY = "summary"
_MAX_LINES = 60


class Summarizer(Protocol):
    async def chat_completion(self, messages: list[dict[str, Any]], **kwargs: Any) -> Any: ...


def _build_context_summary(messages: list[ConversationMessage]) -> str:
    """Extractive summary: recent user requests plus tool usage counts."""
    user_intents: list[str] = []
    action_counts: dict[str, int] = {}

    for msg in messages:
        if msg.role == "user":
            content = msg.content.strip()
            if len(content) > 100:
                content = content[:97] + "..."
            if content:
                user_intents.append(content)
        elif msg.role == "assistant":
            for part in msg.parts or []:
                if is_tool_part(part):
                    name = tool_name_of(part)
                    action_counts[name] = action_counts.get(name, 0) + 1

    summary_parts = []
    if user_intents:
        summary_parts.append(f"User requests: {'; '.join(user_intents[-5:])}")
    if action_counts:
        action_summary = ", ".join(
            f"{a} x{c}" if c > 1 else a
            for a, c in sorted(action_counts.items(), key=lambda x: -x[1])[:10]
        )
        summary_parts.append(f"Actions taken: {action_summary}")
    return "\n".join(summary_parts)


def _transcript(messages: list[ConversationMessage]) -> str:
    lines = []
    for msg in messages[-_MAX_LINES:]:
        if msg.role == "user":
            lines.append(f"User: {msg.content[:200]}")
        elif msg.role == "assistant":
            tools = [tool_name_of(p) for p in msg.parts or [] if is_tool_part(p)]
            text = text_of(msg.parts or []).strip()
            if tools:
                lines.append(f"Assistant: Called {', '.join(tools)}")
            if text:
                lines.append(f"Assistant: {text[:200]}")
    return "\n".join(lines)


async def summarize_messages(
    messages: list[ConversationMessage],
    llm: Optional[Summarizer] = None,
) -> str:
    """
    Summarize a campaign-building conversation in 2-3 sentences.

    Falls back to the extractive summary when no LLM is given or the call fails.
    """
    if llm is None:
        return _build_context_summary(messages)

    prompt = f"""Summarize this ad campaign building conversation in 2-3 sentences.
Focus on: the business and offer, the campaign goal, what was created or changed (creatives, copy, locations, audience), and what is still open.

Conversation:
{_transcript(messages)}

Summary:"""

    try:
        response = await llm.chat_completion(
            messages=[
                {"role": "system", "content": "You are a concise summarizer. Output only the summary, nothing else."},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
            max_tokens=300,
        )
        content = (getattr(response, "content", None) or "").strip()
        return content or _build_context_summary(messages)
    except Exception as e:
        logger.warning(f"LLM summarization failed: {e}")
        return _build_context_summary(messages)


async def summarize_conversation(
    session_factory: Callable[[], AsyncSession],
    conversation_id: str,
    llm: Optional[Summarizer] = None,
) -> str:
    """Summarize a stored conversation and save the result in its metadata.

    Runs as a detached task. The model call happens outside any
    transaction; the metadata write takes the conversation lock so it
    cannot undo workflow state a concurrent turn just saved.
    """
    async with session_factory() as db:
        messages = await load_all_messages(db, conversation_id)
    if not messages:
        return ""
    summary = await summarize_messages(messages, llm)
    if summary:
        async with session_factory() as db:
            try:
                await lock_conversation(db, conversation_id)
                await merge_conversation_metadata(db, conversation_id, {SUMMARY_KEY: summary})
                await db.commit()
            except Exception:
                await db.rollback()
                raise
    logger.info(f"Summarized conversation {conversation_id[:8]} ({len(messages)} messages)")
    return summary
