"""Conversation CRUD operations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from adpilot.db.models import Conversation

logger = logging.getLogger(__name__)


class ConversationAccessDenied(Exception):
    """The conversation exists but belongs to another user."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} belongs to another user")
        self.conversation_id = conversation_id


async def create_conversation(
    db: AsyncSession,
    user_id: str,
    campaign_id: Optional[str] = None,
    title: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Conversation:
    """
    Create a new conversation for a user.

    Raises IntegrityError (at flush) when the campaign already has one.
    """
    conversation = Conversation(
        user_id=user_id,
        campaign_id=campaign_id,
        title=title,
        extra_metadata=dict(metadata or {}),
        message_count=0,
    )
    db.add(conversation)
    await db.flush()

    logger.info(f"Created conversation {conversation.id[:8]} for user {user_id[:8]}")
    return conversation


async def get_conversation(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    with_messages: bool = False,
) -> Optional[Conversation]:
    """
    Get a conversation by ID, verifying ownership.

    Returns None if not found or owned by someone else.
    """
    query = select(Conversation).where(
        Conversation.id == conversation_id,
        Conversation.user_id == user_id,
    )
    if with_messages:
        query = query.options(selectinload(Conversation.messages))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_conversation_for_campaign(db: AsyncSession, campaign_id: str) -> Optional[Conversation]:
    result = await db.execute(select(Conversation).where(Conversation.campaign_id == campaign_id))
    return result.scalar_one_or_none()


async def get_or_create_for_campaign(
    db: AsyncSession,
    user_id: str,
    campaign_id: str,
) -> tuple[Conversation, bool]:
    """
    Return the campaign's conversation, creating it if absent.

    The UNIQUE constraint on ``campaign_id`` makes creation single-writer:
    a concurrent loser gets an IntegrityError, rolls back and re-reads the
    winner's row. Commits on creation, so call this before any other
    pending work in ``db``.

    Returns:
        (conversation, created)

    Raises:
        ConversationAccessDenied: the campaign's conversation belongs to another user
    """
    existing = await get_conversation_for_campaign(db, campaign_id)
    if existing is None:
        try:
            conversation = await create_conversation(db, user_id, campaign_id=campaign_id)
            await db.commit()
            return conversation, True
        except IntegrityError:
            await db.rollback()
            logger.info(f"Conversation for campaign {campaign_id[:8]} created concurrently; re-reading")
            existing = await get_conversation_for_campaign(db, campaign_id)
            if existing is None:
                raise

    if existing.user_id != user_id:
        raise ConversationAccessDenied(existing.id)
    return existing, False


async def list_conversations(
    db: AsyncSession,
    user_id: str,
    campaign_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Conversation], int]:
    """
    List a user's conversations, most recently updated first.

    Returns:
        Tuple of (conversations list, total count)
    """
    query = select(Conversation).where(Conversation.user_id == user_id)
    if campaign_id:
        query = query.where(Conversation.campaign_id == campaign_id)

    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar() or 0

    result = await db.execute(query.order_by(desc(Conversation.updated_at)).limit(limit).offset(offset))
    conversations = list(result.scalars().all())

    logger.debug(f"Listed {len(conversations)}/{total} conversations for user {user_id[:8]}")
    return conversations, total


async def delete_conversation(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
) -> bool:
    """
    Permanently delete a conversation and its messages.

    Returns:
        True if deleted, False if not found/authorized
    """
    conversation = await get_conversation(db, conversation_id, user_id)
    if not conversation:
        return False

    await db.delete(conversation)
    await db.flush()

    logger.info(f"Deleted conversation {conversation_id[:8]}")
    return True


async def set_title_if_unset(db: AsyncSession, conversation_id: str, title: str) -> bool:
    """Set the title only if it is still NULL. Returns True if this call set it."""
    result = await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id, Conversation.title.is_(None))
        .values(title=title[:255])
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) > 0


async def merge_conversation_metadata(
    db: AsyncSession,
    conversation_id: str,
    updates: Mapping[str, Any],
    set_if_absent: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Merge keys into the conversation's metadata document.

    ``updates`` overwrite; ``set_if_absent`` only fill keys that are missing
    or null (used for ``current_goal``, which is authoritative once set).
    Callers hold the conversation's write lock (see ``append_messages``).
    """
    result = await db.execute(select(Conversation).where(Conversation.id == conversation_id))
    conversation = result.scalar_one()
    await db.refresh(conversation, ["extra_metadata"])

    merged = dict(conversation.extra_metadata or {})
    merged.update({k: v for k, v in updates.items() if v is not None})
    for key, value in (set_if_absent or {}).items():
        if value is not None and merged.get(key) is None:
            merged[key] = value

    # Reassign: in-place mutation of a JSON column is not change-tracked.
    conversation.extra_metadata = merged
    conversation.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return merged
