"""Pydantic request/response models (camelCase on the wire)."""
from adpilot.models.base import CamelModel
from adpilot.models.requests import ChatTurnRequest, ConversationCreateRequest, UIMessage

__all__ = ["CamelModel", "ChatTurnRequest", "ConversationCreateRequest", "UIMessage"]
