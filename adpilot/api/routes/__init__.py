"""API route modules."""
from __future__ import annotations

from adpilot.api.routes import chat, conversations, health

__all__ = ["chat", "conversations", "health"]
