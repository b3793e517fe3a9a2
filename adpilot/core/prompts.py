"""
System prompt composition.

``compose_system_prompt`` is a pure function of (goal, step, mode, context):
no I/O, no clock, no randomness. Identical inputs give byte-identical
output, which keeps provider-side prompt caching effective across turns.

Section order:
  1. location-setup mode (returns early)
  2. edit mode with a reference (returns early)
  3. offer, plan, results, results-tab instructions, conversation summary
  4. goal
  5. step instructions
  6. core behaviour
  7. tool usage rules
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from adpilot.core.workflow import WorkflowMode

SECTION_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class TurnContext:
    """Domain context for one turn. Empty strings mean "nothing to say"."""

    results_context: str = ""
    offer_context: str = ""
    plan_context: str = ""
    reference_context: str = ""
    summary_context: str = ""
    location_input: str = ""


GOAL_CONTEXTS: dict[str, str] = {
    "calls": """This campaign is optimized for generating PHONE CALLS.

**Visual & Creative Guidelines:**
- Include trust signals (professional imagery, credentials, testimonials)
- Emphasize personal connection and accessibility
- Show real people, faces, and direct communication

**Copy & Messaging:**
- CTAs should encourage immediate calling: "Call Now", "Speak to an Expert", "Get Your Free Consultation"
- Emphasize urgency and availability: "Available 24/7", "Talk to us today\"""",
    "leads": """This campaign is optimized for LEAD GENERATION through form submissions.

**Visual & Creative Guidelines:**
- Include value exchange imagery (forms, checklists, downloads, assessments)
- Show transformation and results from information sharing
- Use imagery suggesting consultation, assessment, or personalized service

**Copy & Messaging:**
- CTAs for form submission: "Sign Up", "Get Your Free Quote", "Request Information"
- Emphasize value exchange: "Free", "Exclusive", "Personalized"
- Reduce friction: "Quick", "Easy", "Just 2 minutes\"""",
    "website-visits": """This campaign is optimized for driving WEBSITE TRAFFIC and browsing.

**Visual & Creative Guidelines:**
- Show browsing and discovery actions (screens, devices, online shopping)
- Include product catalogs, website interfaces, or digital storefronts

**Copy & Messaging:**
- CTAs for website visits: "Shop Now", "Explore More", "View Collection", "Learn More"
- Emphasize discovery: "Discover", "Explore", "Browse\"""",
}

STEP_INSTRUCTIONS: dict[str, str] = {
    "location": """**LOCATION STEP - GEOGRAPHIC TARGETING**
- Call addLocations when the user asks for location setup
- DO NOT call generateVariations, setupGoal, or any creative tools
- Focus ONLY on location targeting""",
    "audience": """**AUDIENCE STEP - TARGETING INTERVIEW**
- Use gatherAudienceInfo after each answer to track what is still missing
- Call manualTargetingParameters once demographics and 2-3 interests or behaviors are known
- Focus ONLY on who the ads should reach""",
    "copy": """**COPY STEP - TEXT EDITING ONLY:**
- NEVER call generateVariations unless the user EXPLICITLY says "generate new ads from scratch"
- Use the copy tools for text modifications
- Focus ONLY on copy content""",
    "destination": """**DESTINATION STEP - SETUP ONLY:**
- NEVER call generateVariations unless the user EXPLICITLY says "generate new ads from scratch"
- Help with destination setup (forms, URLs, phone numbers)""",
    "budget": """**BUDGET/PREVIEW STEP - REVIEW ONLY:**
- NEVER call generateVariations unless the user EXPLICITLY says "generate new ads from scratch"
- Help review the ad setup
- Focus ONLY on budget and launch configuration""",
    "ads": """**ADS STEP - CREATIVE GENERATION ONLY:**
- Call generateVariations when the user wants to create ad creatives
- NEVER call addLocations on this step
- NEVER mix creative tools with targeting/campaign tools""",
}

RESULTS_TAB_INSTRUCTIONS = """[RESULTS MODE]
The user is viewing the Results tab. Focus on:
- Explaining metrics in plain language
- Suggesting optimizations based on the numbers above
- Offering to adjust budget, schedule, or targeting when helpful
Do NOT ask setup questions unless the user switches back to Setup."""

CORE_BEHAVIOR = """## Core Behavior: Smart Conversation, Then Action
- **Smart questions**: Ask ONE helpful question that gathers multiple details at once
- **Don't overwhelm**: Never ask more than 1-2 questions before acting
- **Be decisive**: Once you have enough context, USE TOOLS immediately
- **Be friendly, brief, enthusiastic**"""

TOOL_USAGE_RULES = """## Tool Usage Rules

**NEVER MIX TOOL TYPES:**
- Creative tools + build tools in the same response is not allowed
- ONE tool category per response

**Tool Categories:**
- Creative: generateVariations, editVariation, regenerateVariation
- Copy: editCopy, refineHeadline, refinePrimaryText, refineDescription
- Targeting: addLocations, removeLocation
- Campaign: createAd, renameAd, duplicateAd, deleteAd

Deleting or clearing anything needs the user's confirmation in the app; call the tool and wait."""


def _location_setup_section(location_input: str) -> str:
    return f"""# LOCATION SETUP MODE ACTIVE

The user provided location: "{location_input}"

YOU MUST CALL THE addLocations TOOL NOW.

**RULES:**
1. Process ONLY: "{location_input}"
2. DO NOT suggest multiple locations
3. DO NOT call any other tools

**Mode Detection:**
- If the user said "exclude" -> mode: "exclude"
- Otherwise -> mode: "include"

CALL THE TOOL NOW. DO NOT OUTPUT ANY OTHER TEXT."""


def _edit_mode_section(reference_context: str) -> str:
    return f"""# EDITING MODE ACTIVE

You are editing an EXISTING ad variation.

**EDITING CONTEXT:**
{reference_context}

**MANDATORY RULES:**
1. NEVER call generateVariations - the user is editing ONE variation
2. For MODIFICATIONS -> call the edit tool immediately
3. For a NEW VERSION -> call regenerateVariation immediately
4. Use variationIndex from the context - REQUIRED

**After calling the tool, DO NOT output any text.**"""


def _goal_section(goal: Optional[str]) -> str:
    goal_type = (goal or "NOT SET").upper()
    description = GOAL_CONTEXTS.get(goal or "", "No specific goal has been set for this campaign yet.")
    directive = (
        f"Every creative, copy suggestion, image generation, and recommendation MUST align with the **{goal}** goal defined above."
        if goal
        else "Once a goal is set, ensure all creative decisions align with that goal."
    )
    return f"# CAMPAIGN GOAL: {goal_type}\n\n{description}\n\n## Your Primary Directive\n{directive}"


def _step_section(step: Optional[str]) -> str:
    instruction = STEP_INSTRUCTIONS.get(step or "")
    if not instruction:
        return ""
    return f"## CRITICAL: Step-Aware Tool Usage\n\n**Current Step:** {step}\n\n{instruction}"


def compose_system_prompt(
    goal: Optional[str],
    step: Optional[str],
    mode: WorkflowMode,
    context: TurnContext,
) -> str:
    """Render the system prompt for one turn."""
    if mode is WorkflowMode.LOCATION_SETUP and context.location_input:
        return _location_setup_section(context.location_input)

    if mode is WorkflowMode.EDIT and context.reference_context:
        return _edit_mode_section(context.reference_context)

    sections = [
        context.offer_context,
        context.plan_context,
        context.results_context,
        RESULTS_TAB_INSTRUCTIONS if mode is WorkflowMode.RESULTS else "",
        context.summary_context,
        _goal_section(goal),
        _step_section(step),
        CORE_BEHAVIOR,
        TOOL_USAGE_RULES,
    ]
    return SECTION_SEPARATOR.join(s.strip() for s in sections if s and s.strip())
