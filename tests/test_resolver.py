"""Tests for adpilot.core.chat.resolver.resolve_conversation."""
from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from adpilot.core.chat.resolver import MissingCampaignReference, is_valid_id, resolve_conversation
from adpilot.db.models import Conversation
from adpilot.services.conversations import ConversationAccessDenied, create_conversation
from tests.fakes import OTHER_USER_ID, TEST_USER_ID


def test_is_valid_id() -> None:
    assert is_valid_id(str(uuid.uuid4()))
    assert not is_valid_id("campaign-42")
    assert not is_valid_id("")
    assert not is_valid_id(None)
    assert not is_valid_id(uuid.uuid4().hex)


@pytest.mark.asyncio
async def test_existing_conversation_is_returned_exactly(db_session) -> None:
    existing = await create_conversation(db_session, TEST_USER_ID, campaign_id=str(uuid.uuid4()))
    await db_session.commit()

    resolved = await resolve_conversation(db_session, existing.id, str(uuid.uuid4()), TEST_USER_ID)
    assert resolved.conversation.id == existing.id
    assert resolved.created is False


@pytest.mark.asyncio
async def test_first_turn_creates_campaign_conversation(db_session, campaign_id) -> None:
    resolved = await resolve_conversation(db_session, None, campaign_id, TEST_USER_ID)
    assert resolved.created is True
    assert resolved.conversation.campaign_id == campaign_id

    again = await resolve_conversation(db_session, None, campaign_id, TEST_USER_ID)
    assert again.created is False
    assert again.conversation.id == resolved.conversation.id


@pytest.mark.asyncio
async def test_unknown_conversation_id_is_used_as_campaign_id(db_session, campaign_id) -> None:
    resolved = await resolve_conversation(db_session, campaign_id, None, TEST_USER_ID)
    assert resolved.created is True
    assert resolved.conversation.campaign_id == campaign_id


@pytest.mark.asyncio
@pytest.mark.parametrize("conversation_id, campaign", [
    (None, None),
    ("not-a-uuid", None),
    (None, "campaign-42"),
])
async def test_nothing_usable_is_rejected(db_session, conversation_id, campaign) -> None:
    with pytest.raises(MissingCampaignReference) as exc_info:
        await resolve_conversation(db_session, conversation_id, campaign, TEST_USER_ID)
    assert exc_info.value.message == "Campaign ID required for new conversations"


@pytest.mark.asyncio
async def test_other_users_conversation_is_denied(db_session, campaign_id) -> None:
    owned = await create_conversation(db_session, OTHER_USER_ID, campaign_id=campaign_id)
    await db_session.commit()

    with pytest.raises(ConversationAccessDenied):
        await resolve_conversation(db_session, owned.id, None, TEST_USER_ID)
    with pytest.raises(ConversationAccessDenied):
        await resolve_conversation(db_session, None, campaign_id, TEST_USER_ID)


@pytest.mark.asyncio
async def test_concurrent_first_turns_create_one_conversation(file_session_factory, campaign_id) -> None:
    async def first_turn():
        async with file_session_factory() as db:
            resolved = await resolve_conversation(db, None, campaign_id, TEST_USER_ID)
            return resolved.conversation.id, resolved.created

    results = await asyncio.gather(*(first_turn() for _ in range(8)))

    assert len({conversation_id for conversation_id, _ in results}) == 1
    assert sum(1 for _, created in results if created) == 1

    async with file_session_factory() as db:
        count = await db.scalar(select(func.count()).select_from(Conversation))
    assert count == 1
