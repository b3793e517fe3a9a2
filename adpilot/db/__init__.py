"""
Database module for AdPilot chat.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from adpilot.db.database import (
    get_db,
    init_db,
    close_db,
    AsyncSessionLocal,
)
from adpilot.db.models import Conversation, ConversationMessage

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "AsyncSessionLocal",
    "Conversation",
    "ConversationMessage",
]
