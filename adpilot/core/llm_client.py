"""
LLM client for the campaign assistant.

Talks to an OpenAI-compatible chat-completions endpoint (OpenRouter):
- non-streaming completions (summaries)
- streaming completions with reasoning, text, citations and tool calls
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional

import httpx

from adpilot.config import settings

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM provider (OpenRouter only)."""
    OPENROUTER = "openrouter"


class LLMError(Exception):
    """The model invocation itself failed (transport, auth, provider error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class LLMResponse:
    """Non-streaming response from the LLM."""
    content: Optional[str] = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, Any]] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


def _citations_from(delta: dict[str, Any]) -> list[dict[str, str]]:
    """Pull ``url_citation`` annotations (web-search models) out of a delta."""
    sources = []
    for ann in delta.get("annotations") or []:
        if not isinstance(ann, dict) or ann.get("type") != "url_citation":
            continue
        cite = ann.get("url_citation") or {}
        url = cite.get("url")
        if isinstance(url, str) and url:
            sources.append({"url": url, "title": cite.get("title") or ""})
    return sources


class LLMClient:
    """OpenRouter chat-completions client."""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        base_url: Optional[str] = None,
    ):
        self.provider = provider or settings.llm_provider
        self.api_key = api_key or self._get_api_key()
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    def _get_api_key(self) -> str:
        if self.provider == LLMProvider.OPENROUTER:
            key = settings.openrouter_api_key
            if key is None:
                raise ValueError("OpenRouter API key not configured")
            return key
        raise ValueError(f"No API key configured for provider: {self.provider}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.api_key}",
                "X-Title": settings.app_name,
            }
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_retries: int = 2,
    ) -> LLMResponse:
        """Send a chat completion request with retry logic."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        last_error: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            if attempt > 0:
                backoff = 2 ** attempt
                logger.warning(f"Retry {attempt}/{max_retries} after {backoff}s")
                await asyncio.sleep(backoff)

            start = time.time()
            try:
                response = await self.client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()
                data = response.json()
                usage = data.get("usage", {})
                logger.info(
                    f"LLM: {time.time() - start:.2f}s, {usage.get('prompt_tokens', 0)} prompt, "
                    f"{usage.get('completion_tokens', 0)} completion tokens"
                )
                return self._parse_response(data)
            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code in (429, 500, 502, 503, 504):
                    continue
                raise LLMError(f"LLM request failed: HTTP {e.response.status_code}", e.response.status_code) from e
            except httpx.HTTPError as e:
                last_error = e
                continue

        raise LLMError(f"LLM request failed after retries: {last_error}")

    async def chat_completion_stream(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion.

        Yields ``reasoning_delta``, ``content_delta`` and ``source`` events as
        they arrive, then one ``done`` event with the accumulated content and
        raw tool calls (arguments left as the model's JSON string).
        ``model`` overrides the configured model for this call only.

        Raises:
            LLMError: on any transport or provider failure
        """
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        accumulated_content: list[str] = []
        accumulated_tool_calls: dict[int, dict[str, Any]] = {}
        finish_reason = None
        usage: dict[str, Any] = {}

        try:
            async with self.client.stream("POST", f"{self.base_url}/chat/completions", json=payload) as response:
                if response.status_code != 200:
                    error_text = (await response.aread()).decode()[:500]
                    logger.error(f"Stream error {response.status_code}: {error_text}")
                    raise LLMError(f"LLM stream failed: HTTP {response.status_code}", response.status_code)

                async for line in response.aiter_lines():
                    if not line or not line.startswith("data: "):
                        continue
                    data_str = line[6:]
                    if data_str.strip() == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue

                    if "error" in chunk:
                        raise LLMError(f"Provider error: {chunk['error']}")

                    choice = (chunk.get("choices") or [{}])[0]
                    delta = choice.get("delta") or {}

                    # OpenRouter sends both delta.reasoning and delta.reasoning_details
                    # with identical text; use only the structured array.
                    for detail in delta.get("reasoning_details") or []:
                        if detail.get("type") == "reasoning.text" and detail.get("text"):
                            yield {"type": "reasoning_delta", "text": detail["text"]}
                        elif detail.get("type") == "reasoning.summary" and detail.get("summary"):
                            yield {"type": "reasoning_delta", "text": detail["summary"]}

                    if delta.get("content"):
                        accumulated_content.append(delta["content"])
                        yield {"type": "content_delta", "text": delta["content"]}

                    for source in _citations_from(delta):
                        yield {"type": "source", **source}

                    for tc in delta.get("tool_calls") or []:
                        idx = tc.get("index", 0)
                        entry = accumulated_tool_calls.setdefault(idx, {
                            "id": tc.get("id", ""),
                            "type": "function",
                            "function": {"name": "", "arguments": ""},
                        })
                        if tc.get("id"):
                            entry["id"] = tc["id"]
                        fn = tc.get("function") or {}
                        if fn.get("name"):
                            entry["function"]["name"] = fn["name"]
                        if fn.get("arguments"):
                            entry["function"]["arguments"] += fn["arguments"]

                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]
                    if chunk.get("usage"):
                        usage = chunk["usage"]

        except httpx.HTTPError as e:
            logger.error(f"Stream HTTP error: {e}")
            raise LLMError(f"LLM stream failed: {e}") from e

        yield {
            "type": "done",
            "content": "".join(accumulated_content) if accumulated_content else None,
            "tool_calls": [accumulated_tool_calls[i] for i in sorted(accumulated_tool_calls)],
            "finish_reason": finish_reason,
            "usage": usage,
        }

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        """Parse OpenAI-compatible response."""
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        return LLMResponse(
            content=message.get("content"),
            tool_calls=list(message.get("tool_calls") or []),
            finish_reason=choice.get("finish_reason"),
            usage=data.get("usage"),
        )


_shared_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Return the process-wide LLM client."""
    global _shared_client
    if _shared_client is None:
        _shared_client = LLMClient()
    return _shared_client


async def close_llm_client() -> None:
    global _shared_client
    if _shared_client is not None:
        await _shared_client.close()
        _shared_client = None
