"""
Streaming turn execution.

A turn runs as two independently-lived pieces sharing a ``TurnChannel``:

- ``TurnStream.run`` is the producer. It is spawned as a detached task, owns
  the model stream and the tool loop, publishes events to the channel and
  always reaches persistence once the model has answered. The channel is
  closed only after persistence returns, so a caller that read up to
  ``finish`` and the end of the response can reload the saved turn.
- ``TurnStream.deliver`` is the consumer the HTTP response iterates. It only
  reads from the channel; when the client goes away it detaches the channel
  and returns. It never cancels the producer.

State machine::

    INITIALIZING -> STREAMING -> FINISHING -> COMPLETED
                              \\-> ERRORED
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Protocol

from adpilot.config import settings
from adpilot.core.chat.finish import FinishHandler
from adpilot.core.chat.history import HistoryResult
from adpilot.core.llm_client import LLMError
from adpilot.core.tools import (
    NoSuchToolError,
    ToolCallError,
    ToolDescriptor,
    ToolExecutionError,
    tool_schemas,
)
from adpilot.core.tools.executor import ToolExecutor, ToolInvocation
from adpilot.core.tools.validation import parse_tool_arguments
from adpilot.core.workflow import WorkflowContext, build_journey_metadata
from adpilot.protocol import (
    ChatEvent,
    ErrorEvent,
    FinishEvent,
    ReasoningDeltaEvent,
    SourceUrlEvent,
    SSESequencer,
    StartEvent,
    TextDeltaEvent,
    ToolInputAvailableEvent,
    ToolOutputAvailableEvent,
    ToolOutputErrorEvent,
    emit,
)
from adpilot.services.conversations.formatting import has_visible_output, to_model_messages

logger = logging.getLogger(__name__)


class TurnTimeoutError(Exception):
    """The turn exceeded its wall-clock ceiling."""

    def __init__(self, timeout: float):
        super().__init__(f"Turn exceeded {timeout:g}s")
        self.timeout = timeout


class TurnState(str, Enum):
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    FINISHING = "finishing"
    ERRORED = "errored"
    COMPLETED = "completed"


class StreamingModel(Protocol):
    def chat_completion_stream(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[dict[str, Any]]: ...


_CLOSED = object()


class TurnChannel:
    """Single-producer, single-consumer event buffer for one turn.

    After ``detach`` (consumer gone) publishing becomes a no-op, so a turn
    that finishes without a listener does not accumulate events.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        self.detached = False

    def publish(self, event: ChatEvent) -> None:
        if self.closed or self.detached:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    def detach(self) -> None:
        self.detached = True

    async def events(self) -> AsyncIterator[ChatEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


@dataclass(frozen=True)
class TurnPlan:
    """Everything resolved before the stream starts. Immutable for the turn."""

    conversation_id: str
    user_id: str
    campaign_id: Optional[str]
    new_message_id: str
    workflow: WorkflowContext
    goal: Optional[str]
    system_prompt: str
    tools: Mapping[str, ToolDescriptor]
    history: HistoryResult
    model: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)


@dataclass
class _ToolOutcome:
    content: dict[str, Any]
    awaiting_confirmation: bool = False
    # Arguments echoed back to the model; "{}" when the call could not be parsed.
    arguments: str = "{}"


class TurnStream:
    """One turn: drain task plus deliverable event stream."""

    def __init__(
        self,
        plan: TurnPlan,
        llm: StreamingModel,
        executor: ToolExecutor,
        finish_handler: FinishHandler,
        timeout: Optional[float] = None,
        max_tool_steps: Optional[int] = None,
    ):
        self.plan = plan
        self.llm = llm
        self.executor = executor
        self.finish_handler = finish_handler
        self.timeout = timeout if timeout is not None else settings.turn_timeout_seconds
        self.max_tool_steps = max_tool_steps or settings.max_tool_steps

        self.channel = TurnChannel()
        self.state = TurnState.INITIALIZING
        self.message_id = f"msg-{secrets.token_hex(8)}"
        self.parts: list[dict[str, Any]] = []
        self.finish_reason: Optional[str] = None
        self._source_count = 0

    @property
    def conversation_id(self) -> str:
        return self.plan.conversation_id

    def _publish(self, event: ChatEvent) -> None:
        self.channel.publish(event)

    # -- assistant message assembly ----------------------------------------

    def _append_delta(self, part_type: str, delta: str) -> None:
        if self.parts and self.parts[-1]["type"] == part_type:
            self.parts[-1]["text"] += delta
        else:
            self.parts.append({"type": part_type, "text": delta})

    def assistant_message(self) -> dict[str, Any]:
        return {"id": self.message_id, "role": "assistant", "parts": list(self.parts)}

    def _user_message(self) -> dict[str, Any]:
        for message in self.plan.history.messages:
            if message.get("id") == self.plan.new_message_id:
                return {**message, "metadata": build_journey_metadata(self.plan.workflow)}
        raise LookupError(f"New message {self.plan.new_message_id} missing from turn history")

    # -- tool calls --------------------------------------------------------

    async def _handle_tool_call(self, call: Mapping[str, Any]) -> tuple[str, _ToolOutcome]:
        fn = call.get("function") or {}
        name = str(fn.get("name") or "")
        call_id = str(call.get("id") or f"call_{secrets.token_hex(6)}")
        raw_args = fn.get("arguments")
        short_id = self.conversation_id[:8]

        try:
            tool = self.plan.tools.get(name)
            if tool is None:
                raise NoSuchToolError(name, call_id, list(self.plan.tools))
            args = parse_tool_arguments(tool, call_id, raw_args)
        except ToolCallError as e:
            logger.warning(f"[{e.kind}] {name} in conversation {short_id}: {e.message}")
            self._publish(ToolOutputErrorEvent(
                tool_call_id=call_id, tool_name=name, error_text=e.message, error_kind=e.kind,
            ))
            self.parts.append({
                "type": f"tool-{name}", "toolCallId": call_id, "state": "output-error",
                "input": {}, "errorText": e.message,
            })
            return call_id, _ToolOutcome({"error": e.message, "kind": e.kind})

        self._publish(ToolInputAvailableEvent(
            tool_call_id=call_id, tool_name=name, input=args,
            requires_confirmation=tool.requires_confirmation,
        ))

        if tool.requires_confirmation:
            logger.info(f"{name} awaits user confirmation in conversation {short_id}")
            self.parts.append({
                "type": f"tool-{name}", "toolCallId": call_id, "state": "input-available", "input": args,
            })
            return call_id, _ToolOutcome(
                {"status": "awaiting_confirmation"}, awaiting_confirmation=True, arguments=json.dumps(args),
            )

        invocation = ToolInvocation(
            user_id=self.plan.user_id,
            conversation_id=self.conversation_id,
            campaign_id=self.plan.campaign_id,
            workflow=self.plan.workflow,
        )
        try:
            output = await self.executor.execute(tool, args, invocation)
        except ToolExecutionError as e:
            logger.warning(f"[tool-execution-failed] {name} in conversation {short_id}: {e}")
            self._publish(ToolOutputErrorEvent(
                tool_call_id=call_id, tool_name=name, error_text=str(e), error_kind="tool-execution-failed",
            ))
            self.parts.append({
                "type": f"tool-{name}", "toolCallId": call_id, "state": "output-error",
                "input": args, "errorText": str(e),
            })
            return call_id, _ToolOutcome(
                {"error": str(e), "kind": "tool-execution-failed"}, arguments=json.dumps(args),
            )

        self._publish(ToolOutputAvailableEvent(tool_call_id=call_id, output=output))
        self.parts.append({
            "type": f"tool-{name}", "toolCallId": call_id, "state": "output-available",
            "input": args, "output": output,
        })
        return call_id, _ToolOutcome(output, arguments=json.dumps(args))

    # -- model loop --------------------------------------------------------

    async def _run_model(self) -> None:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.plan.system_prompt}]
        messages.extend(to_model_messages(self.plan.history.messages))
        schemas = tool_schemas(self.plan.tools) or None

        for step in range(self.max_tool_steps):
            if step > 0:
                self.parts.append({"type": "step-start"})

            done: dict[str, Any] = {}
            async for chunk in self.llm.chat_completion_stream(messages, tools=schemas, model=self.plan.model):
                kind = chunk.get("type")
                if kind == "content_delta":
                    self._append_delta("text", chunk["text"])
                    self._publish(TextDeltaEvent(delta=chunk["text"]))
                elif kind == "reasoning_delta":
                    self._append_delta("reasoning", chunk["text"])
                    self._publish(ReasoningDeltaEvent(delta=chunk["text"]))
                elif kind == "source":
                    self._source_count += 1
                    source_id = f"src-{self._source_count}"
                    title = chunk.get("title") or None
                    self.parts.append({"type": "source-url", "sourceId": source_id, "url": chunk["url"], "title": title})
                    self._publish(SourceUrlEvent(source_id=source_id, url=chunk["url"], title=title))
                elif kind == "done":
                    done = chunk

            self.finish_reason = done.get("finish_reason")
            tool_calls = [c for c in done.get("tool_calls") or [] if isinstance(c, Mapping)]
            if not tool_calls:
                return

            results: list[dict[str, Any]] = []
            assistant_calls: list[dict[str, Any]] = []
            pause = False
            for call in tool_calls:
                call_id, outcome = await self._handle_tool_call(call)
                fn = call.get("function") or {}
                assistant_calls.append({
                    "id": call_id,
                    "type": "function",
                    "function": {"name": fn.get("name") or "", "arguments": outcome.arguments},
                })
                results.append({"role": "tool", "tool_call_id": call_id, "content": json.dumps(outcome.content)})
                pause = pause or outcome.awaiting_confirmation

            if pause:
                self.finish_reason = "awaiting_confirmation"
                return
            messages.append({"role": "assistant", "content": done.get("content"), "tool_calls": assistant_calls})
            messages.extend(results)

        logger.warning(
            f"Conversation {self.conversation_id[:8]} hit the {self.max_tool_steps}-step tool limit"
        )
        self.finish_reason = "max_steps"

    async def _run_with_deadline(self) -> None:
        remaining = self.timeout - (time.monotonic() - self.plan.started_at)
        if remaining <= 0:
            raise TurnTimeoutError(self.timeout)
        try:
            await asyncio.wait_for(self._run_model(), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise TurnTimeoutError(self.timeout) from e

    def _fail(self, error_text: str, code: str) -> None:
        self.state = TurnState.ERRORED
        self._publish(ErrorEvent(error_text=error_text, code=code))

    async def run(self) -> TurnState:
        """Drain task body. Returns the terminal state."""
        short_id = self.conversation_id[:8]
        try:
            self._publish(StartEvent(message_id=self.message_id, conversation_id=self.conversation_id))
            self.state = TurnState.STREAMING
            try:
                await self._run_with_deadline()
            except LLMError as e:
                logger.error(f"Model call failed for conversation {short_id}: {e}")
                self._fail(f"Model request failed: {e}", "llm_error")
                return self.state
            except TurnTimeoutError as e:
                logger.error(f"Turn timed out for conversation {short_id}: {e}")
                self._fail("The response took too long. Please try again.", "timeout")
                return self.state

            self.state = TurnState.FINISHING
            assistant = self.assistant_message()
            produced = [self._user_message()]
            if has_visible_output(assistant["parts"]):
                produced.append(assistant)
            self._publish(FinishEvent(
                conversation_id=self.conversation_id,
                messages=produced,
                finish_reason=self.finish_reason,
                degraded_history=self.plan.history.degraded,
            ))

            await self.finish_handler.handle(self.plan, assistant)
            self.state = TurnState.COMPLETED
            return self.state
        except Exception as e:
            logger.exception(f"Turn failed for conversation {short_id}: {e}")
            if self.state is not TurnState.FINISHING:
                self._fail("Internal error", "internal_error")
            return self.state
        finally:
            self.channel.close()
            logger.info(f"Turn for conversation {short_id} ended in state {self.state.value}")

    async def deliver(self) -> AsyncIterator[str]:
        """SSE frames for the HTTP response."""
        sequencer = SSESequencer()
        completed = False
        try:
            async for event in self.channel.events():
                yield sequencer(emit(event))
            completed = True
        finally:
            if not completed:
                logger.info(f"Client left conversation {self.conversation_id[:8]}; turn continues detached")
            self.channel.detach()
