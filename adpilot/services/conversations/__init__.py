"""
Conversation management service package.

Handles CRUD for conversations, sequenced message persistence, message
formatting for the client and the model, and summarization.
"""
from __future__ import annotations

from adpilot.services.conversations.crud import (
    ConversationAccessDenied,
    create_conversation,
    delete_conversation,
    get_conversation,
    get_conversation_for_campaign,
    get_or_create_for_campaign,
    list_conversations,
    merge_conversation_metadata,
    set_title_if_unset,
)
from adpilot.services.conversations.formatting import (
    extract_content,
    generate_title_from_messages,
    generate_title_from_prompt,
    to_model_messages,
    to_ui_message,
)
from adpilot.services.conversations.messages import (
    AppendResult,
    NewMessage,
    append_messages,
    load_all_messages,
    load_recent_messages,
)
from adpilot.services.conversations.summarization import summarize_conversation, summarize_messages

__all__ = [
    # CRUD
    "ConversationAccessDenied",
    "create_conversation",
    "delete_conversation",
    "get_conversation",
    "get_conversation_for_campaign",
    "get_or_create_for_campaign",
    "list_conversations",
    "merge_conversation_metadata",
    "set_title_if_unset",
    # Messages
    "AppendResult",
    "NewMessage",
    "append_messages",
    "load_all_messages",
    "load_recent_messages",
    # Formatting
    "extract_content",
    "generate_title_from_messages",
    "generate_title_from_prompt",
    "to_model_messages",
    "to_ui_message",
    # Summaries
    "summarize_conversation",
    "summarize_messages",
]
