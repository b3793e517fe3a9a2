"""
Chat turn endpoint (SSE).

Everything that can reject the request happens before the first byte is
streamed: authentication (401), rate limiting (429), body validation (422),
conversation resolution (400/403). Once streaming starts the turn only ends
with a ``finish`` or ``error`` event.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.api.limits import limiter
from adpilot.auth.dependencies import require_valid_token
from adpilot.auth.tokens import TokenClaims
from adpilot.config import settings
from adpilot.core.chat.orchestrator import ChatOrchestrator, get_chat_orchestrator
from adpilot.core.chat.resolver import MissingCampaignReference
from adpilot.db import get_db
from adpilot.models.requests import ChatTurnRequest
from adpilot.services.conversations import ConversationAccessDenied

router = APIRouter()
logger = logging.getLogger(__name__)


def _chat_rate_limit() -> str:
    return settings.chat_rate_limit


@router.post(
    "/chat",
    response_model=None,
    responses={
        200: {"description": "text/event-stream of chat events"},
        400: {"description": "No conversation or campaign id"},
        401: {"description": "Missing or invalid session"},
        403: {"description": "Conversation belongs to another user"},
        429: {"description": "Rate limit exceeded"},
    },
)
@limiter.limit(_chat_rate_limit)
async def chat_turn(
    request: Request,
    chat_request: ChatTurnRequest,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> StreamingResponse:
    """
    Run one conversational turn and stream it back.

    The turn keeps running if the client disconnects; its messages are
    persisted either way.
    """
    user_id = token_claims["sub"]

    try:
        turn = await orchestrator.start_turn(db, chat_request, user_id)
    except MissingCampaignReference as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ConversationAccessDenied:
        logger.warning(f"User {user_id[:8]} denied access to conversation {chat_request.conversation_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Conversation not accessible.")

    return StreamingResponse(
        turn.deliver(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Conversation-Id": turn.conversation_id,
        },
    )
