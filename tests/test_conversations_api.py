"""Tests for the conversation endpoints (adpilot/api/routes/conversations.py)."""
from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from adpilot.services.conversations import NewMessage, append_messages


async def _create(client: AsyncClient, headers, campaign_id: str | None = None, title: str | None = None) -> dict:
    body = {}
    if campaign_id:
        body["campaignId"] = campaign_id
    if title:
        body["title"] = title
    resp = await client.post("/api/v1/conversations", json=body, headers=headers)
    assert resp.status_code == 201
    return resp.json()


class TestCreate:

    @pytest.mark.asyncio
    async def test_create(self, client: AsyncClient, auth_headers, campaign_id: str) -> None:
        data = await _create(client, auth_headers, campaign_id, "Spring promo")
        assert data["campaignId"] == campaign_id
        assert data["title"] == "Spring promo"
        assert data["messageCount"] == 0
        assert data["metadata"] == {}

    @pytest.mark.asyncio
    async def test_one_conversation_per_campaign(self, client: AsyncClient, auth_headers, campaign_id: str) -> None:
        await _create(client, auth_headers, campaign_id)
        resp = await client.post("/api/v1/conversations", json={"campaignId": campaign_id}, headers=auth_headers)
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_campaign_id_must_be_uuid(self, client: AsyncClient, auth_headers) -> None:
        resp = await client.post("/api/v1/conversations", json={"campaignId": "campaign-42"}, headers=auth_headers)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/conversations", json={})
        assert resp.status_code == 401


class TestList:

    @pytest.mark.asyncio
    async def test_lists_only_own_conversations(self, client: AsyncClient, auth_headers, other_auth_headers) -> None:
        mine = await _create(client, auth_headers, str(uuid.uuid4()))
        await _create(client, auth_headers, str(uuid.uuid4()))
        await _create(client, other_auth_headers, str(uuid.uuid4()))

        data = (await client.get("/api/v1/conversations", headers=auth_headers)).json()
        assert data["total"] == 2
        assert len(data["conversations"]) == 2

        filtered = (await client.get(
            "/api/v1/conversations", params={"campaignId": mine["campaignId"]}, headers=auth_headers
        )).json()
        assert [c["id"] for c in filtered["conversations"]] == [mine["id"]]

    @pytest.mark.asyncio
    async def test_pagination(self, client: AsyncClient, auth_headers) -> None:
        for _ in range(3):
            await _create(client, auth_headers, str(uuid.uuid4()))

        data = (await client.get("/api/v1/conversations", params={"limit": 2, "offset": 2}, headers=auth_headers)).json()
        assert (data["total"], data["limit"], data["offset"]) == (3, 2, 2)
        assert len(data["conversations"]) == 1

    @pytest.mark.asyncio
    async def test_limit_bounds(self, client: AsyncClient, auth_headers) -> None:
        resp = await client.get("/api/v1/conversations", params={"limit": 500}, headers=auth_headers)
        assert resp.status_code == 422


class TestGetAndDelete:

    @pytest.mark.asyncio
    async def test_messages_in_sequence_with_unreplayable_parts_dropped(
        self, client: AsyncClient, auth_headers, session_factory
    ) -> None:
        created = await _create(client, auth_headers, str(uuid.uuid4()))
        async with session_factory() as db:
            await append_messages(db, created["id"], [
                NewMessage(id="u1", role="user", parts=[{"type": "text", "text": "Delete my old ad"}]),
                NewMessage(id="a1", role="assistant", parts=[
                    {"type": "text", "text": "Confirm below."},
                    {"type": "tool-deleteAd", "toolCallId": "c1", "state": "input-available", "input": {"adId": "ad-1"}},
                ]),
            ])
            await db.commit()

        data = (await client.get(f"/api/v1/conversations/{created['id']}", headers=auth_headers)).json()
        assert data["messageCount"] == 2
        assert [(m["id"], m["seq"]) for m in data["messages"]] == [("u1", 1), ("a1", 2)]
        assert data["messages"][1]["parts"] == [{"type": "text", "text": "Confirm below."}]

    @pytest.mark.asyncio
    async def test_other_user_gets_404(self, client: AsyncClient, auth_headers, other_auth_headers) -> None:
        created = await _create(client, auth_headers, str(uuid.uuid4()))
        resp = await client.get(f"/api/v1/conversations/{created['id']}", headers=other_auth_headers)
        assert resp.status_code == 404
        resp = await client.delete(f"/api/v1/conversations/{created['id']}", headers=other_auth_headers)
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, auth_headers) -> None:
        created = await _create(client, auth_headers, str(uuid.uuid4()))

        resp = await client.delete(f"/api/v1/conversations/{created['id']}", headers=auth_headers)
        assert resp.status_code == 204
        resp = await client.get(f"/api/v1/conversations/{created['id']}", headers=auth_headers)
        assert resp.status_code == 404
        resp = await client.delete(f"/api/v1/conversations/{created['id']}", headers=auth_headers)
        assert resp.status_code == 404
