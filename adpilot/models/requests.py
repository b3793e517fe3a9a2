"""Request models for the AdPilot chat API."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator

from adpilot.models.base import CamelModel

# Generous upper bound for one message's parts; the history validator does the
# fine-grained shape checks.
_MAX_PARTS = 200


class UIMessage(CamelModel):
    """A chat message in the client's wire shape.

    ``parts`` are kept as loose dicts here: the client sends heterogeneous,
    partially-typed parts (text, tool calls, reasoning...) and the history
    validator checks them against the active tool set per turn.
    ``metadata`` is the untrusted workflow side-channel.
    """

    id: str = Field(..., min_length=1, max_length=128)
    role: Literal["user", "assistant", "system"]
    parts: list[dict[str, Any]] = Field(default_factory=list, max_length=_MAX_PARTS)
    metadata: dict[str, Any] | None = None


class ChatTurnRequest(CamelModel):
    """One conversational turn.

    The campaign id travels inside ``message.metadata.campaignId``. Older
    clients send the conversation id as ``id``; both spellings are accepted.
    """

    message: UIMessage
    conversation_id: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("conversationId", "conversation_id", "id"),
        description="Existing conversation to continue. Omit on the first turn of a campaign.",
    )
    model: str | None = Field(
        default=None,
        max_length=128,
        description="Model override (OpenRouter slug). Uses the configured default if not specified.",
    )

    @field_validator("message")
    @classmethod
    def _inbound_must_be_user(cls, value: UIMessage) -> UIMessage:
        if value.role != "user":
            raise ValueError("message.role must be 'user'")
        if not value.parts:
            raise ValueError("message.parts must not be empty")
        return value


class ConversationCreateRequest(CamelModel):
    """Explicitly open a conversation (normally done implicitly by the first turn)."""

    campaign_id: str | None = Field(
        default=None,
        pattern=r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$',
    )
    title: str | None = Field(default=None, max_length=255)
