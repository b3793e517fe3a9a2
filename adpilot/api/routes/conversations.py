"""Conversation endpoints: list, create, read with messages, delete."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.auth.dependencies import require_valid_token
from adpilot.auth.tokens import TokenClaims
from adpilot.db import Conversation, get_db
from adpilot.models.requests import ConversationCreateRequest
from adpilot.models.responses import (
    ConversationDetail,
    ConversationListResponse,
    ConversationSummary,
    MessageResponse,
)
from adpilot.services import conversations as conv_service
from adpilot.services.conversations.formatting import sanitize_stored_parts

router = APIRouter()
logger = logging.getLogger(__name__)


def _summary(conversation: Conversation) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        campaign_id=conversation.campaign_id,
        title=conversation.title,
        message_count=conversation.message_count,
        metadata=conversation.extra_metadata or {},
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


@router.get("/conversations", response_model=ConversationListResponse, response_model_by_alias=True)
async def list_conversations(
    campaign_id: str | None = Query(default=None, alias="campaignId", max_length=64),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
) -> ConversationListResponse:
    """List the caller's conversations, most recently active first."""
    conversations, total = await conv_service.list_conversations(
        db, token_claims["sub"], campaign_id=campaign_id, limit=limit, offset=offset
    )
    return ConversationListResponse(
        conversations=[_summary(c) for c in conversations],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "/conversations",
    response_model=ConversationSummary,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    body: ConversationCreateRequest,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
) -> ConversationSummary:
    """Open a conversation explicitly. A campaign can only have one."""
    user_id = token_claims["sub"]
    try:
        conversation = await conv_service.create_conversation(
            db, user_id, campaign_id=body.campaign_id, title=body.title
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This campaign already has a conversation.",
        )
    await db.refresh(conversation)
    return _summary(conversation)


@router.get("/conversations/{conversation_id}", response_model=ConversationDetail, response_model_by_alias=True)
async def get_conversation(
    conversation_id: str,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
) -> ConversationDetail:
    """A conversation with its messages in sequence order."""
    conversation = await conv_service.get_conversation(
        db, conversation_id, token_claims["sub"], with_messages=True
    )
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")

    summary = _summary(conversation)
    return ConversationDetail(
        **summary.model_dump(),
        messages=[
            MessageResponse(
                id=m.id,
                role=m.role,
                parts=sanitize_stored_parts(m.parts or []),
                metadata=m.extra_metadata,
                seq=m.seq,
                created_at=m.created_at,
            )
            for m in conversation.messages
        ],
    )


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Delete a conversation and its messages."""
    deleted = await conv_service.delete_conversation(db, conversation_id, token_claims["sub"])
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
