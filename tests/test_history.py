"""Tests for adpilot.core.chat.history: stored history validation and degradation."""
from __future__ import annotations

import logging
import uuid

import pytest

from adpilot.core.chat.history import load_validated_history, validate_ui_messages
from adpilot.core.tools import get_tools
from adpilot.core.workflow import parse_workflow_metadata
from adpilot.services.conversations import NewMessage, append_messages, create_conversation
from tests.fakes import TEST_USER_ID, user_message


def _tools(**metadata):
    return get_tools(parse_workflow_metadata({"metadata": metadata}))


def _tool_part(name: str, state: str = "output-available", call_id: str | None = "call_1", **extra) -> dict:
    part = {"type": f"tool-{name}", "state": state, "input": {}, "output": {"ok": True}, **extra}
    if call_id is not None:
        part["toolCallId"] = call_id
    return part


def _assistant(msg_id: str, *parts: dict) -> dict:
    return {"id": msg_id, "role": "assistant", "parts": list(parts)}


def _codes(messages: list[dict], **metadata) -> list[str]:
    return [e.code for e in validate_ui_messages(messages, _tools(**metadata))]


class TestValidateUIMessages:

    def test_clean_history(self) -> None:
        messages = [
            user_message("Rename my ad", msg_id="u1"),
            _assistant("a1", {"type": "text", "text": "Done."}, _tool_part("renameAd", input={"adId": "ad-1", "name": "Spring"})),
        ]
        assert _codes(messages) == []

    def test_message_shape_errors(self) -> None:
        messages = [
            {"role": "user", "parts": []},
            {"id": "x", "role": "robot", "parts": []},
            {"id": "x", "role": "user", "parts": "hello"},
        ]
        assert _codes(messages) == ["MISSING_ID", "INVALID_ROLE", "DUPLICATE_ID", "INVALID_PARTS"]

    def test_part_shape_errors(self) -> None:
        messages = [{"id": "u1", "role": "user", "parts": ["hi", {"text": "no type"}, {"type": "text", "text": 3}]}]
        assert _codes(messages) == ["INVALID_PART", "INVALID_PART", "INVALID_PART"]

    def test_tool_part_errors(self) -> None:
        messages = [_assistant(
            "a1",
            _tool_part("renameAd", call_id=None, input={"adId": "a", "name": "b"}),
            _tool_part("createAd", state="finished"),
            _tool_part("launchRocket"),
        )]
        assert _codes(messages) == ["MISSING_TOOL_CALL_ID", "INVALID_TOOL_STATE", "UNKNOWN_TOOL"]

    def test_failed_call_to_unknown_tool_is_allowed(self) -> None:
        messages = [_assistant("a1", _tool_part("launchRocket", state="output-error", errorText="No such tool"))]
        assert _codes(messages) == []

    def test_input_checked_against_active_tool(self) -> None:
        messages = [_assistant("a1", _tool_part("renameAd", input={"adId": "ad-1"}))]
        errors = validate_ui_messages(messages, _tools())
        assert [(e.field, e.code) for e in errors] == [("messages[0].parts[0].input.name", "MISSING_REQUIRED")]

    def test_non_object_input(self) -> None:
        messages = [_assistant("a1", _tool_part("renameAd", input="ad-1"))]
        assert _codes(messages) == ["INVALID_TOOL_INPUT"]

    def test_inactive_tool_input_is_not_checked(self) -> None:
        # addLocations is only offered on the location step
        messages = [_assistant("a1", _tool_part("addLocations", input={"locations": "Austin"}))]
        assert _codes(messages, currentStep="ads") == []
        assert _codes(messages, currentStep="location") == ["TYPE_MISMATCH"]


class TestLoadValidatedHistory:

    @pytest.mark.asyncio
    async def test_prior_messages_precede_new_one(self, db_session) -> None:
        conversation = await create_conversation(db_session, TEST_USER_ID, campaign_id=str(uuid.uuid4()))
        await append_messages(db_session, conversation.id, [
            NewMessage(id="u1", role="user", parts=[{"type": "text", "text": "Hi"}]),
            NewMessage(id="a1", role="assistant", parts=[{"type": "text", "text": "Hello!"}]),
        ])
        await db_session.commit()

        new = user_message("Make it about roofing", msg_id="u2")
        history = await load_validated_history(db_session, conversation.id, new, _tools())

        assert not history.degraded
        assert [m["id"] for m in history.messages] == ["u1", "a1", "u2"]

    @pytest.mark.asyncio
    async def test_retried_message_replaces_stored_copy(self, db_session) -> None:
        conversation = await create_conversation(db_session, TEST_USER_ID, campaign_id=str(uuid.uuid4()))
        await append_messages(db_session, conversation.id, [
            NewMessage(id="u1", role="user", parts=[{"type": "text", "text": "Hi"}]),
        ])
        await db_session.commit()

        retried = user_message("Hi", msg_id="u1")
        history = await load_validated_history(db_session, conversation.id, retried, _tools())
        assert history.messages == [retried]
        assert not history.degraded

    @pytest.mark.asyncio
    async def test_window_bounds_history(self, db_session) -> None:
        conversation = await create_conversation(db_session, TEST_USER_ID, campaign_id=str(uuid.uuid4()))
        await append_messages(db_session, conversation.id, [
            NewMessage(id=f"m{i}", role="user", parts=[{"type": "text", "text": str(i)}]) for i in range(6)
        ])
        await db_session.commit()

        history = await load_validated_history(
            db_session, conversation.id, user_message("next", msg_id="new"), _tools(), window=2
        )
        assert [m["id"] for m in history.messages] == ["m4", "m5", "new"]

    @pytest.mark.asyncio
    async def test_stale_tool_history_degrades(self, db_session, caplog: pytest.LogCaptureFixture) -> None:
        conversation = await create_conversation(db_session, TEST_USER_ID, campaign_id=str(uuid.uuid4()))
        await append_messages(db_session, conversation.id, [
            NewMessage(id="a1", role="assistant", parts=[_tool_part("retiredTool")]),
        ])
        await db_session.commit()

        new = user_message("Hello again", msg_id="u2")
        with caplog.at_level(logging.WARNING):
            history = await load_validated_history(db_session, conversation.id, new, _tools())

        assert history.degraded
        assert history.messages == [new]
        assert [e.code for e in history.errors] == ["UNKNOWN_TOOL"]
        assert "History validation failed" in caplog.text

    @pytest.mark.asyncio
    async def test_storage_failure_degrades(self, db_session, monkeypatch, caplog: pytest.LogCaptureFixture) -> None:
        from adpilot.core.chat import history as history_module

        async def _broken(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(history_module, "load_recent_messages", _broken)
        new = user_message("Hello", msg_id="u1")
        with caplog.at_level(logging.WARNING):
            history = await load_validated_history(db_session, str(uuid.uuid4()), new, _tools())

        assert history.degraded
        assert history.messages == [new]
        assert "History unavailable" in caplog.text
