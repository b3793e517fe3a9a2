"""
Turn orchestration.

``ChatOrchestrator.start_turn`` does everything that can still fail the
request (conversation resolution, access checks) and the read-only
preparation of the turn, then spawns the detached drain task and hands back
the ``TurnStream`` for the HTTP layer to deliver.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from adpilot.core.chat.context import ContextAssembler
from adpilot.core.chat.finish import FinishHandler
from adpilot.core.chat.history import load_validated_history
from adpilot.core.chat.resolver import resolve_conversation
from adpilot.core.chat.stream import StreamingModel, TurnPlan, TurnStream
from adpilot.core.prompts import compose_system_prompt
from adpilot.core.tasks import DetachedTaskGroup, get_detached_tasks
from adpilot.core.tools import get_tools
from adpilot.core.tools.executor import ToolExecutor, get_tool_executor
from adpilot.core.workflow import parse_goal, parse_workflow_metadata
from adpilot.db import AsyncSessionLocal
from adpilot.models.requests import ChatTurnRequest

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    def __init__(
        self,
        assembler: ContextAssembler,
        llm: StreamingModel,
        executor: ToolExecutor,
        finish_handler: FinishHandler,
        tasks: DetachedTaskGroup,
    ):
        self.assembler = assembler
        self.llm = llm
        self.executor = executor
        self.finish_handler = finish_handler
        self.tasks = tasks

    async def start_turn(self, db: AsyncSession, request: ChatTurnRequest, user_id: str) -> TurnStream:
        """
        Prepare a turn and start streaming it.

        Raises:
            MissingCampaignReference: no usable conversation or campaign id
            ConversationAccessDenied: the conversation belongs to another user
        """
        started_at = time.monotonic()
        workflow = parse_workflow_metadata(request.message)

        resolved = await resolve_conversation(db, request.conversation_id, workflow.campaign_id, user_id)
        conversation = resolved.conversation

        # A goal stored on the conversation outranks whatever the client sends.
        goal = parse_goal((conversation.extra_metadata or {}).get("current_goal")) or workflow.goal
        workflow = workflow.with_goal(goal)

        tools = get_tools(workflow)
        context = await self.assembler.assemble(conversation, workflow, goal)
        system_prompt = compose_system_prompt(goal, workflow.current_step, workflow.mode, context)

        new_message = request.message.model_dump(mode="json", by_alias=True, exclude_none=True)
        history = await load_validated_history(db, conversation.id, new_message, tools)

        plan = TurnPlan(
            conversation_id=conversation.id,
            user_id=user_id,
            campaign_id=conversation.campaign_id or workflow.campaign_id,
            new_message_id=request.message.id,
            workflow=workflow,
            goal=goal,
            system_prompt=system_prompt,
            tools=tools,
            history=history,
            model=request.model,
            started_at=started_at,
        )
        logger.info(
            f"Turn for conversation {conversation.id[:8]}: mode={workflow.mode.value} "
            f"step={workflow.current_step} goal={goal} tools={len(tools)} "
            f"history={len(history.messages)}{' (degraded)' if history.degraded else ''}"
        )

        stream = TurnStream(plan, self.llm, self.executor, self.finish_handler)
        self.tasks.spawn(stream.run(), name=f"turn-{conversation.id[:8]}")
        return stream


_orchestrator: Optional[ChatOrchestrator] = None


def build_chat_orchestrator(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
) -> ChatOrchestrator:
    """Wire the orchestrator to the process-wide collaborators."""
    from adpilot.core.llm_client import get_llm_client
    from adpilot.services.campaign_data import get_campaign_data_client

    campaign_data = get_campaign_data_client()
    llm = get_llm_client()
    tasks = get_detached_tasks()
    return ChatOrchestrator(
        assembler=ContextAssembler(metrics=campaign_data, plans=campaign_data, offers=campaign_data),
        llm=llm,
        executor=get_tool_executor(),
        finish_handler=FinishHandler(session_factory, tasks, summarizer=llm),
        tasks=tasks,
    )


def get_chat_orchestrator() -> ChatOrchestrator:
    """FastAPI dependency returning the shared orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_chat_orchestrator()
    return _orchestrator
