"""
End-of-turn persistence.

Runs once per successful turn inside the detached drain task, after the
finish event went out. Messages, workflow metadata and the title are written
in one transaction; a failing store is retried with exponential backoff and
finally logged, never surfaced to the caller who already has the answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.config import settings
from adpilot.core.tasks import DetachedTaskGroup
from adpilot.core.workflow import build_journey_metadata
from adpilot.services.conversations import (
    AppendResult,
    NewMessage,
    append_messages,
    generate_title_from_messages,
    merge_conversation_metadata,
    set_title_if_unset,
    summarize_conversation,
)
from adpilot.services.conversations.formatting import has_visible_output
from adpilot.services.conversations.summarization import Summarizer

if TYPE_CHECKING:
    from adpilot.core.chat.stream import TurnPlan

logger = logging.getLogger(__name__)


def crossed_threshold(previous_count: int, new_count: int, threshold: int) -> bool:
    """True when ``new_count`` passed a multiple of ``threshold`` that ``previous_count`` had not."""
    if threshold <= 0:
        return False
    return previous_count // threshold < new_count // threshold


class FinishHandler:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        tasks: DetachedTaskGroup,
        summarizer: Optional[Summarizer] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        summarization_threshold: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.tasks = tasks
        self.summarizer = summarizer
        self.max_attempts = max(1, max_attempts or settings.persist_max_attempts)
        self.base_delay = settings.persist_retry_base_delay if base_delay is None else base_delay
        self.summarization_threshold = summarization_threshold or settings.summarization_threshold

    def message_set(self, plan: "TurnPlan", assistant: dict[str, Any]) -> list[NewMessage]:
        """The turn's messages in order, minus assistant messages with nothing to show."""
        journey = build_journey_metadata(plan.workflow)
        out: list[NewMessage] = []
        for message in [*plan.history.messages, assistant]:
            if message["role"] == "assistant" and not has_visible_output(message.get("parts") or []):
                continue
            new = NewMessage.from_ui(message)
            if new.id == plan.new_message_id and new.role == "user":
                new.metadata = journey
            out.append(new)
        return out

    async def _persist(self, plan: "TurnPlan", messages: list[NewMessage]) -> AppendResult:
        wf = plan.workflow
        async with self.session_factory() as db:
            try:
                result = await append_messages(db, plan.conversation_id, messages)
                await merge_conversation_metadata(
                    db,
                    plan.conversation_id,
                    updates={
                        "current_step": wf.current_step,
                        "active_tab": wf.active_tab,
                        "edit_mode": wf.edit_mode,
                    },
                    set_if_absent={"current_goal": plan.goal},
                )
                if result.message_count > 0:
                    title = generate_title_from_messages(
                        {"role": m.role, "parts": m.parts} for m in messages
                    )
                    await set_title_if_unset(db, plan.conversation_id, title)
                await db.commit()
                return result
            except Exception:
                await db.rollback()
                raise

    async def handle(self, plan: "TurnPlan", assistant: dict[str, Any]) -> Optional[AppendResult]:
        """Persist the turn. Returns None when every attempt failed."""
        messages = self.message_set(plan, assistant)
        short_id = plan.conversation_id[:8]

        result: Optional[AppendResult] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self._persist(plan, messages)
                break
            except Exception as e:
                if attempt == self.max_attempts:
                    logger.error(
                        f"Persisting turn for conversation {short_id} failed after {attempt} attempt(s); "
                        f"lost message ids: {[m.id for m in messages]}: {e}",
                        exc_info=True,
                    )
                    return None
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Persisting turn for conversation {short_id} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

        assert result is not None
        logger.info(
            f"Persisted {len(result.inserted)} message(s) for conversation {short_id} "
            f"(count {result.previous_count} -> {result.message_count}, skipped {len(result.skipped_ids)})"
        )

        if crossed_threshold(result.previous_count, result.message_count, self.summarization_threshold):
            logger.info(f"Conversation {short_id} reached {result.message_count} messages; summarizing")
            self.tasks.spawn(
                summarize_conversation(self.session_factory, plan.conversation_id, self.summarizer),
                name=f"summarize-{short_id}",
            )
        return result
