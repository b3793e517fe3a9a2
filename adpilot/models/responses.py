"""Response models for the AdPilot chat API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from adpilot.models.base import CamelModel


class HealthResponse(CamelModel):
    """Liveness payload."""

    status: str = "ok"
    service: str
    version: str


class MessageResponse(CamelModel):
    """A persisted message as returned to the client."""

    id: str
    role: str
    parts: list[dict[str, Any]]
    metadata: dict[str, Any] | None = None
    seq: int
    created_at: datetime


class ConversationSummary(CamelModel):
    """Conversation row without messages, for list views."""

    id: str
    campaign_id: str | None = None
    title: str | None = None
    message_count: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ConversationDetail(ConversationSummary):
    """Conversation with its messages in sequence order."""

    messages: list[MessageResponse] = Field(default_factory=list)


class ConversationListResponse(CamelModel):
    """Paginated conversation list."""

    conversations: list[ConversationSummary]
    total: int
    limit: int
    offset: int
