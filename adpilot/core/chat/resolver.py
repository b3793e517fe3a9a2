"""Map an inbound (conversation id | campaign id) to a durable Conversation."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.db.models import Conversation
from adpilot.services.conversations import ConversationAccessDenied, get_or_create_for_campaign

logger = logging.getLogger(__name__)


class MissingCampaignReference(Exception):
    """Neither a known conversation nor a valid campaign id was supplied."""

    def __init__(self, message: str = "Campaign ID required for new conversations"):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class ResolvedConversation:
    conversation: Conversation
    created: bool = False


def is_valid_id(value: Optional[str]) -> bool:
    """True for a canonical UUID string."""
    if not value or not isinstance(value, str):
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


async def resolve_conversation(
    db: AsyncSession,
    conversation_id: Optional[str],
    campaign_id: Optional[str],
    user_id: str,
) -> ResolvedConversation:
    """
    Resolve the turn's conversation.

    1. a well-formed ``conversation_id`` of an existing conversation wins
    2. else the campaign's conversation (``campaign_id``), created if absent
    3. else an unknown but well-formed ``conversation_id`` is taken as the
       campaign id (the web client names the chat after its campaign)
    4. else MissingCampaignReference

    Raises:
        MissingCampaignReference: nothing usable was supplied
        ConversationAccessDenied: the conversation belongs to another user
    """
    if is_valid_id(conversation_id):
        result = await db.execute(select(Conversation).where(Conversation.id == conversation_id))
        existing = result.scalar_one_or_none()
        if existing is not None:
            if existing.user_id != user_id:
                raise ConversationAccessDenied(existing.id)
            return ResolvedConversation(existing)

    target = None
    if is_valid_id(campaign_id):
        target = campaign_id
    elif is_valid_id(conversation_id):
        target = conversation_id

    if target is None:
        logger.warning(
            f"Unresolvable turn for user {user_id[:8]}: conversation_id={conversation_id!r} campaign_id={campaign_id!r}"
        )
        raise MissingCampaignReference()

    conversation, created = await get_or_create_for_campaign(db, user_id, target)
    if created:
        logger.info(f"Started conversation {conversation.id[:8]} for campaign {target[:8]}")
    return ResolvedConversation(conversation, created)
