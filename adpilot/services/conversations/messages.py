"""Message persistence: bounded history reads and idempotent, sequenced appends."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.db.models import Conversation, ConversationMessage
from adpilot.services.conversations.formatting import extract_content

logger = logging.getLogger(__name__)


@dataclass
class NewMessage:
    """A message to persist. ``seq`` is never supplied by callers."""

    id: str
    role: str
    parts: list[dict[str, Any]]
    metadata: Optional[dict[str, Any]] = None

    @classmethod
    def from_ui(cls, message: dict[str, Any]) -> "NewMessage":
        return cls(
            id=str(message["id"]),
            role=str(message["role"]),
            parts=list(message.get("parts") or []),
            metadata=message.get("metadata"),
        )


@dataclass
class AppendResult:
    inserted: list[ConversationMessage] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)
    message_count: int = 0
    previous_count: int = 0


async def load_recent_messages(
    db: AsyncSession,
    conversation_id: str,
    limit: int,
) -> list[ConversationMessage]:
    """The most recent ``limit`` messages, returned in ascending ``seq``."""
    result = await db.execute(
        select(ConversationMessage)
        .where(ConversationMessage.conversation_id == conversation_id)
        .order_by(ConversationMessage.seq.desc())
        .limit(limit)
    )
    rows = list(result.scalars().all())
    rows.reverse()
    return rows


async def load_all_messages(db: AsyncSession, conversation_id: str) -> list[ConversationMessage]:
    result = await db.execute(
        select(ConversationMessage)
        .where(ConversationMessage.conversation_id == conversation_id)
        .order_by(ConversationMessage.seq)
    )
    return list(result.scalars().all())


async def lock_conversation(db: AsyncSession, conversation_id: str) -> None:
    """Take the conversation's write lock for the rest of the transaction.

    A no-op UPDATE: a row lock on PostgreSQL, the database write lock on
    SQLite. Concurrent appenders queue here, so the id check and sequence
    assignment that follow see each other's committed rows.
    """
    result = await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise LookupError(f"Conversation {conversation_id} does not exist")


async def append_messages(
    db: AsyncSession,
    conversation_id: str,
    messages: Iterable[NewMessage],
) -> AppendResult:
    """
    Persist messages idempotently and assign their sequence numbers.

    Ids already stored for the conversation are skipped. New messages get
    consecutive ``seq`` values following ``message_count``, which is bumped
    in the same transaction; a rollback undoes both, so sequences stay
    gap-free. Does not commit.
    """
    messages = list(messages)
    await lock_conversation(db, conversation_id)

    ids = [m.id for m in messages]
    existing: set[str] = set()
    if ids:
        result = await db.execute(
            select(ConversationMessage.id).where(
                ConversationMessage.conversation_id == conversation_id,
                ConversationMessage.id.in_(ids),
            )
        )
        existing = set(result.scalars().all())

    seen: set[str] = set()
    fresh: list[NewMessage] = []
    skipped: list[str] = []
    for message in messages:
        if message.id in existing or message.id in seen:
            skipped.append(message.id)
            continue
        seen.add(message.id)
        fresh.append(message)

    count_result = await db.execute(
        select(Conversation.message_count).where(Conversation.id == conversation_id)
    )
    previous = count_result.scalar_one()
    if not fresh:
        return AppendResult(skipped_ids=skipped, message_count=previous, previous_count=previous)

    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values(message_count=Conversation.message_count + len(fresh))
        .execution_options(synchronize_session=False)
    )

    rows = []
    for offset, message in enumerate(fresh, start=1):
        row = ConversationMessage(
            conversation_id=conversation_id,
            id=message.id,
            role=message.role,
            content=extract_content(message.parts),
            parts=message.parts,
            extra_metadata=message.metadata,
            seq=previous + offset,
        )
        db.add(row)
        rows.append(row)
    await db.flush()

    logger.debug(
        f"Appended {len(rows)} message(s) to conversation {conversation_id[:8]} "
        f"(seq {previous + 1}..{previous + len(rows)}, skipped {len(skipped)})"
    )
    return AppendResult(
        inserted=rows,
        skipped_ids=skipped,
        message_count=previous + len(rows),
        previous_count=previous,
    )
