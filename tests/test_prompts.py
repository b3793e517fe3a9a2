"""Tests for adpilot.core.prompts.compose_system_prompt."""
from __future__ import annotations

from adpilot.core.prompts import (
    CORE_BEHAVIOR,
    RESULTS_TAB_INSTRUCTIONS,
    SECTION_SEPARATOR,
    TOOL_USAGE_RULES,
    TurnContext,
    compose_system_prompt,
)
from adpilot.core.workflow import WorkflowMode


def test_same_inputs_render_identical_prompts() -> None:
    ctx = TurnContext(offer_context="[OFFER]\nFree inspection", summary_context="[CONVERSATION SO FAR]\nHi")
    first = compose_system_prompt("leads", "ads", WorkflowMode.SETUP, ctx)
    second = compose_system_prompt("leads", "ads", WorkflowMode.SETUP, ctx)
    assert first == second


def test_setup_prompt_section_order() -> None:
    ctx = TurnContext(
        offer_context="[OFFER]\nFree inspection",
        plan_context="[CREATIVE PLAN]\n- Angle: speed",
        summary_context="[CONVERSATION SO FAR]\nEarlier chat",
    )
    prompt = compose_system_prompt("leads", "ads", WorkflowMode.SETUP, ctx)

    markers = [
        "[OFFER]",
        "[CREATIVE PLAN]",
        "[CONVERSATION SO FAR]",
        "# CAMPAIGN GOAL: LEADS",
        "**Current Step:** ads",
        CORE_BEHAVIOR.splitlines()[0],
        TOOL_USAGE_RULES.splitlines()[0],
    ]
    positions = [prompt.index(m) for m in markers]
    assert positions == sorted(positions)
    assert RESULTS_TAB_INSTRUCTIONS not in prompt


def test_blank_sections_are_skipped() -> None:
    prompt = compose_system_prompt(None, None, WorkflowMode.SETUP, TurnContext())
    assert prompt.startswith("# CAMPAIGN GOAL: NOT SET")
    assert SECTION_SEPARATOR * 2 not in prompt
    assert "Current Step" not in prompt


def test_results_mode_adds_results_instructions() -> None:
    ctx = TurnContext(results_context="[RESULTS SNAPSHOT]\n- People reached: 1,200")
    prompt = compose_system_prompt("calls", None, WorkflowMode.RESULTS, ctx)
    assert prompt.index("[RESULTS SNAPSHOT]") < prompt.index("[RESULTS MODE]")
    assert "PHONE CALLS" in prompt


def test_location_setup_prompt_is_exclusive() -> None:
    ctx = TurnContext(offer_context="[OFFER]\nx", location_input="Austin, TX")
    prompt = compose_system_prompt("leads", "location", WorkflowMode.LOCATION_SETUP, ctx)
    assert prompt.startswith("# LOCATION SETUP MODE ACTIVE")
    assert 'Process ONLY: "Austin, TX"' in prompt
    assert "[OFFER]" not in prompt


def test_edit_prompt_embeds_reference() -> None:
    ctx = TurnContext(reference_context="[USER IS EDITING: Variation 2]\nVariation Index: 1")
    prompt = compose_system_prompt("leads", "ads", WorkflowMode.EDIT, ctx)
    assert prompt.startswith("# EDITING MODE ACTIVE")
    assert "[USER IS EDITING: Variation 2]" in prompt
    assert "# CAMPAIGN GOAL" not in prompt


def test_edit_mode_without_reference_text_uses_full_prompt() -> None:
    prompt = compose_system_prompt("leads", "ads", WorkflowMode.EDIT, TurnContext())
    assert "# CAMPAIGN GOAL: LEADS" in prompt


def test_unknown_step_has_no_step_section() -> None:
    prompt = compose_system_prompt("leads", "mystery", WorkflowMode.SETUP, TurnContext())
    assert "Step-Aware" not in prompt
