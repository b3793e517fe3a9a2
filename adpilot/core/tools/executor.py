"""Server-side execution of AUTO tools against the campaign platform."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from adpilot.config import settings
from adpilot.core.tools.errors import ToolExecutionError
from adpilot.core.tools.metadata import ToolDescriptor
from adpilot.core.workflow import WorkflowContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInvocation:
    """Who is calling a tool, and in which workflow state."""

    user_id: str
    conversation_id: str
    campaign_id: Optional[str]
    workflow: WorkflowContext


class ToolExecutor(Protocol):
    async def execute(
        self, tool: ToolDescriptor, args: dict[str, Any], invocation: ToolInvocation
    ) -> dict[str, Any]: ...


def enforce_locks(tool: ToolDescriptor, args: dict[str, Any], invocation: ToolInvocation) -> dict[str, Any]:
    """Override model-provided values with the registry's locked ones."""
    if not tool.locked_args:
        return args
    provided = {k: args.get(k) for k in tool.locked_args if k in args}
    if provided and provided != dict(tool.locked_args):
        logger.info(f"[LOCK] {tool.name} enforced {dict(tool.locked_args)} over {provided}")
    enforced = {**args, **tool.locked_args}
    if invocation.campaign_id and "campaignId" in tool.parameters.get("properties", {}):
        enforced.setdefault("campaignId", invocation.campaign_id)
    return enforced


def _echo_locks(tool: ToolDescriptor, result: dict[str, Any], invocation: ToolInvocation) -> dict[str, Any]:
    if not tool.locked_args:
        return result
    echoed = dict(result)
    if "variationIndex" in tool.locked_args:
        echoed["variationIndex"] = tool.locked_args["variationIndex"]
    ref = invocation.workflow.editing_reference
    if ref is not None and ref.session_id:
        echoed["sessionId"] = ref.session_id
    return echoed


class CampaignToolExecutor:
    """
    Runs tools through the campaign platform's tool endpoint.

    ``POST {campaign_api_url}/tools/{name}`` with the enforced arguments and
    the caller's identity; the JSON response body is the tool result.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.campaign_api_url).rstrip("/")
        self.timeout = timeout or settings.campaign_api_timeout
        self._client: Optional[httpx.AsyncClient] = None

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

    async def execute(
        self, tool: ToolDescriptor, args: dict[str, Any], invocation: ToolInvocation
    ) -> dict[str, Any]:
        enforced = enforce_locks(tool, args, invocation)
        payload = {
            "args": enforced,
            "userId": invocation.user_id,
            "conversationId": invocation.conversation_id,
            "campaignId": invocation.campaign_id,
        }
        try:
            response = await self.client.post(f"{self.base_url}/tools/{tool.name}", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ToolExecutionError(
                tool.name, f"{tool.name} failed: HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(tool.name, f"{tool.name} failed: {e}") from e

        body = response.json()
        result = body if isinstance(body, dict) else {"result": body}
        return _echo_locks(tool, result, invocation)


_shared_executor: Optional[CampaignToolExecutor] = None


def get_tool_executor() -> CampaignToolExecutor:
    """Return the process-wide tool executor."""
    global _shared_executor
    if _shared_executor is None:
        _shared_executor = CampaignToolExecutor()
    return _shared_executor


async def close_tool_executor() -> None:
    global _shared_executor
    if _shared_executor is not None:
        await _shared_executor.close()
        _shared_executor = None
