"""
SQLAlchemy ORM models for AdPilot chat.

Tables:
- conversations: one thread per user/campaign, with workflow metadata
- conversation_messages: immutable, sequence-numbered messages within a thread
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adpilot.db.database import Base


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class Conversation(Base):
    """
    Conversation thread between a user and the campaign assistant.

    A campaign has at most one conversation (``campaign_id`` is unique), which
    is what makes concurrent first turns for the same campaign converge on a
    single row. ``message_count`` is also the per-conversation sequence
    counter: the message store bumps it atomically before inserting rows and
    numbers the new messages from the returned value.
    """
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    campaign_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        unique=True,
    )

    # Set once by auto-titling; never overwritten.
    title: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Workflow document: current_goal, current_step, active_tab, edit_mode, summary...
    # (named extra_metadata because ``metadata`` is reserved by SQLAlchemy)
    extra_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    message_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
        index=True,
    )

    messages: Mapped[list["ConversationMessage"]] = relationship(
        "ConversationMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ConversationMessage.seq",
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.id[:8]} campaign={self.campaign_id} messages={self.message_count}>"


class ConversationMessage(Base):
    """
    A single persisted message.

    Identity is (conversation_id, id): ``id`` is whatever the client or model
    assigned, so it is only unique within its conversation. ``seq`` is
    assigned by the store and never reused.
    """
    __tablename__ = "conversation_messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_conversation_messages_seq"),
    )

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )

    id: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )  # 'user', 'assistant', 'system', 'tool'

    # Flattened, searchable text; never empty.
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    parts: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # Workflow snapshot at send time
    extra_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation",
        back_populates="messages",
    )

    def __repr__(self) -> str:
        return f"<ConversationMessage {self.id} role={self.role} seq={self.seq}>"
