"""
Read-only client for campaign side-context: metrics, creative plan, offer.

All three endpoints live on the campaign platform API:
    GET {campaign_api_url}/campaigns/{id}/metrics?range=7d
    GET {campaign_api_url}/campaigns/{id}/plan
    GET {campaign_api_url}/campaigns/{id}/offer

404 means "nothing yet" and maps to None. Anything else that goes wrong
raises; the context assembler decides what a failure means for the prompt.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from adpilot.config import settings

logger = logging.getLogger(__name__)


class CampaignDataClient:
    """Implements the metrics, plan and offer readers over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.campaign_api_url).rstrip("/")
        self.timeout = timeout or settings.campaign_api_timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if settings.campaign_api_token:
                headers["Authorization"] = f"Bearer {settings.campaign_api_token}"
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: Optional[dict[str, str]] = None) -> Optional[dict[str, Any]]:
        response = await self.client.get(f"{self.base_url}{path}", params=params)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        body = response.json()
        return body if isinstance(body, dict) else None

    async def get_metrics(self, campaign_id: str, date_range: str = "7d") -> Optional[dict[str, Any]]:
        """Cached metrics snapshot: reach, results, spend, cost_per_result."""
        return await self._get_json(f"/campaigns/{campaign_id}/metrics", {"range": date_range})

    async def get_plan(self, campaign_id: str) -> Optional[dict[str, Any]]:
        """Creative plan: coverage targets and constraints for variations."""
        return await self._get_json(f"/campaigns/{campaign_id}/plan")

    async def get_offer(self, campaign_id: str) -> Optional[str]:
        body = await self._get_json(f"/campaigns/{campaign_id}/offer")
        if not body:
            return None
        text = body.get("offerText") or body.get("offer_text")
        return text.strip() if isinstance(text, str) and text.strip() else None


_shared_client: Optional[CampaignDataClient] = None


def get_campaign_data_client() -> CampaignDataClient:
    """Return the process-wide campaign data client."""
    global _shared_client
    if _shared_client is None:
        _shared_client = CampaignDataClient()
    return _shared_client


async def close_campaign_data_client() -> None:
    global _shared_client
    if _shared_client is not None:
        await _shared_client.close()
        _shared_client = None
