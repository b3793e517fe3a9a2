"""
Side-context assembly for the system prompt.

The only part of a turn that talks to external read APIs. Each section is
built in its own guarded step: a failing source leaves its section empty
and the turn carries on with a thinner prompt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Optional, Protocol

from adpilot.core.prompts import TurnContext
from adpilot.core.workflow import WorkflowContext, build_reference_context
from adpilot.db.models import Conversation

logger = logging.getLogger(__name__)


class MetricsReader(Protocol):
    async def get_metrics(self, campaign_id: str, date_range: str = "7d") -> Optional[dict[str, Any]]: ...


class CreativePlanReader(Protocol):
    async def get_plan(self, campaign_id: str) -> Optional[dict[str, Any]]: ...


class OfferReader(Protocol):
    async def get_offer(self, campaign_id: str) -> Optional[str]: ...


NO_METRICS_TEXT = "[RESULTS SNAPSHOT]\nNo cached metrics yet. Invite the user to refresh the Results tab."

OFFER_REQUIRED_TEXT = """[OFFER REQUIRED - INITIAL SETUP]
Ask ONE concise question to capture the user's concrete offer/value.
Do NOT call any tools yet. Wait for the user's response.
After the user answers: acknowledge briefly (1 sentence) then IMMEDIATELY call generateVariations ONLY."""

COPY_LIMITS_TEXT = "Respect copy limits: primary text <= 125, headline <= 40, description <= 30 characters."


def format_number(value: Any) -> str:
    """1234.56 -> '1,234.6'; missing or non-numeric -> '0'."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return "0"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.1f}"


def format_results_context(metrics: Optional[Mapping[str, Any]], goal: Optional[str]) -> str:
    if not metrics:
        return NO_METRICS_TEXT
    result_label = {"leads": "leads", "calls": "calls"}.get(goal or "", "results")
    cost = metrics.get("cost_per_result", metrics.get("costPerResult"))
    cost_text = f"${format_number(cost)}" if isinstance(cost, (int, float)) else "not enough data yet"
    return "\n".join([
        "[RESULTS SNAPSHOT]",
        f"- People reached: {format_number(metrics.get('reach'))}",
        f"- Total {result_label}: {format_number(metrics.get('results'))}",
        f"- Amount spent: ${format_number(metrics.get('spend'))}",
        f"- Cost per result: {cost_text}",
    ])


def format_offer_context(offer_text: Optional[str]) -> str:
    if not offer_text:
        return OFFER_REQUIRED_TEXT
    return f"[OFFER]\n{offer_text}\n\n[CREATIVE PLAN ACTIVE]\nFollow plan coverage and constraints. {COPY_LIMITS_TEXT}"


def format_plan_context(plan: Optional[Mapping[str, Any]]) -> str:
    if not plan:
        return ""
    lines = ["[CREATIVE PLAN]"]
    for key, label in (("angle", "Angle"), ("audience", "Audience"), ("tone", "Tone")):
        value = plan.get(key)
        if isinstance(value, str) and value.strip():
            lines.append(f"- {label}: {value.strip()}")
    coverage = plan.get("coverage")
    if isinstance(coverage, list) and coverage:
        lines.append("- Coverage: " + ", ".join(str(c) for c in coverage[:10]))
    constraints = plan.get("constraints")
    if isinstance(constraints, list) and constraints:
        lines.append("- Constraints: " + "; ".join(str(c) for c in constraints[:10]))
    return "\n".join(lines) if len(lines) > 1 else ""


def format_summary_context(summary: Any) -> str:
    if not isinstance(summary, str) or not summary.strip():
        return ""
    return f"[CONVERSATION SO FAR]\n{summary.strip()}"


def _stored_offer(conversation: Conversation) -> Optional[str]:
    meta = conversation.extra_metadata or {}
    for key in ("offer_text", "offerText"):
        value = meta.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class ContextAssembler:
    """Builds the immutable ``TurnContext`` for one turn."""

    def __init__(
        self,
        metrics: MetricsReader,
        plans: CreativePlanReader,
        offers: OfferReader,
    ):
        self.metrics = metrics
        self.plans = plans
        self.offers = offers

    async def _guarded(self, section: str, conversation_id: str, work: Awaitable[str]) -> str:
        try:
            return await work
        except Exception as e:
            logger.warning(f"Context section '{section}' unavailable for conversation {conversation_id[:8]}: {e}")
            return ""

    async def _results(self, campaign_id: str, goal: Optional[str]) -> str:
        return format_results_context(await self.metrics.get_metrics(campaign_id, "7d"), goal)

    async def _offer(self, conversation: Conversation) -> str:
        offer = _stored_offer(conversation)
        if offer is None and conversation.campaign_id:
            offer = await self.offers.get_offer(conversation.campaign_id)
        return format_offer_context(offer)

    async def _plan(self, campaign_id: str) -> str:
        return format_plan_context(await self.plans.get_plan(campaign_id))

    async def _empty(self) -> str:
        return ""

    async def assemble(
        self,
        conversation: Conversation,
        workflow: WorkflowContext,
        goal: Optional[str],
    ) -> TurnContext:
        campaign_id = conversation.campaign_id
        cid = conversation.id

        results_work = (
            self._results(campaign_id, goal)
            if workflow.active_tab == "results" and campaign_id
            else self._empty()
        )
        plan_work = self._plan(campaign_id) if campaign_id else self._empty()

        results, offer, plan = await asyncio.gather(
            self._guarded("results", cid, results_work),
            self._guarded("offer", cid, self._offer(conversation)),
            self._guarded("plan", cid, plan_work),
        )

        reference = ""
        if workflow.edit_mode:
            try:
                reference = build_reference_context(workflow.editing_reference)
            except Exception as e:
                logger.warning(f"Context section 'reference' unavailable for conversation {cid[:8]}: {e}")

        summary = format_summary_context((conversation.extra_metadata or {}).get("summary"))

        return TurnContext(
            results_context=results,
            offer_context=offer,
            plan_context=plan,
            reference_context=reference,
            summary_context=summary,
            location_input=workflow.location_input if workflow.location_setup_mode else "",
        )
