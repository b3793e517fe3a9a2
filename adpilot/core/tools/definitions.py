"""
Tool catalog for the campaign-builder assistant.

Tools are grouped by category:
  * creative   image variations for the ad set
  * copy       primary text / headline / description
  * targeting  geographic locations
  * audience   interest/behaviour targeting (audience step only)
  * campaign   ad-level housekeeping
  * goal       campaign objective

Destructive tools (delete, clear, remove) are CONFIRM: the client shows a
confirmation UI and reports the result back on the next turn.
"""

from __future__ import annotations

from typing import Any

from adpilot.core.tools.metadata import ToolDescriptor, ToolExecution, ToolScope

_CAMPAIGN_ID: dict[str, Any] = {"type": "string", "description": "Campaign ID"}
_VARIATION_INDEX: dict[str, Any] = {
    "type": "integer",
    "minimum": 0,
    "maximum": 5,
    "description": "Which variation (0-5)",
}
_COPY_BLOCK: dict[str, Any] = {
    "type": "object",
    "description": "Current copy of the variation",
    "properties": {
        "primaryText": {"type": "string"},
        "headline": {"type": "string"},
        "description": {"type": "string"},
    },
}
_LOCATION: dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Place name as the user wrote it"},
        "type": {"type": "string", "enum": ["city", "region", "country", "zip", "radius"]},
        "radiusKm": {"type": "number", "minimum": 1, "maximum": 80},
    },
    "required": ["name"],
}


def _params(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


CREATIVE_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="generateVariations",
        description="Generate a fresh set of ad creative variations from the user's offer and goal.",
        parameters=_params({
            "prompt": {"type": "string", "description": "What the ads should show"},
            "campaignId": _CAMPAIGN_ID,
            "count": {"type": "integer", "minimum": 1, "maximum": 6},
        }, ["prompt"]),
        category="creative",
    ),
    ToolDescriptor(
        name="selectVariation",
        description="Mark one creative variation as the one to use.",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "campaignId": _CAMPAIGN_ID}, ["variationIndex"]),
        category="creative",
    ),
    ToolDescriptor(
        name="editVariation",
        description="Edit the image of the variation the user is editing.",
        parameters=_params({
            "imageUrl": {"type": "string", "description": "The URL of the variation to edit"},
            "variationIndex": _VARIATION_INDEX,
            "prompt": {"type": "string", "description": "Edit instruction - what to change"},
            "campaignId": _CAMPAIGN_ID,
        }, ["variationIndex", "prompt"]),
        category="creative",
        scope=ToolScope.EDIT,
    ),
    ToolDescriptor(
        name="regenerateVariation",
        description="Create a brand new version of the variation the user is editing.",
        parameters=_params({
            "variationIndex": _VARIATION_INDEX,
            "originalPrompt": {"type": "string", "description": "Context to base the new version on"},
            "campaignId": _CAMPAIGN_ID,
        }, ["variationIndex"]),
        category="creative",
        scope=ToolScope.EDIT,
    ),
    ToolDescriptor(
        name="deleteVariation",
        description="Delete a creative variation.",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "campaignId": _CAMPAIGN_ID}, ["variationIndex"]),
        category="creative",
        execution=ToolExecution.CONFIRM,
        destructive=True,
    ),
]

COPY_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="generateCopyVariations",
        description="Write new ad copy options (primary text, headline, description).",
        parameters=_params({
            "prompt": {"type": "string"},
            "campaignId": _CAMPAIGN_ID,
            "preferEmojis": {"type": "boolean"},
        }),
        category="copy",
    ),
    ToolDescriptor(
        name="selectCopyVariation",
        description="Choose which copy option to use.",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "campaignId": _CAMPAIGN_ID}, ["variationIndex"]),
        category="copy",
    ),
    ToolDescriptor(
        name="editCopy",
        description="Rewrite the copy of the variation the user is editing.",
        parameters=_params({
            "variationIndex": _VARIATION_INDEX,
            "prompt": {"type": "string", "description": "Instruction for how to rewrite the copy"},
            "current": _COPY_BLOCK,
            "campaignId": _CAMPAIGN_ID,
            "preferEmojis": {"type": "boolean"},
        }, ["variationIndex", "prompt"]),
        category="copy",
        scope=ToolScope.EDIT,
    ),
    ToolDescriptor(
        name="refineHeadline",
        description="Tighten or restyle the headline (max 40 characters).",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "instruction": {"type": "string"}}, ["instruction"]),
        category="copy",
    ),
    ToolDescriptor(
        name="refinePrimaryText",
        description="Tighten or restyle the primary text (max 125 characters).",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "instruction": {"type": "string"}}, ["instruction"]),
        category="copy",
    ),
    ToolDescriptor(
        name="refineDescription",
        description="Tighten or restyle the description (max 30 characters).",
        parameters=_params({"variationIndex": _VARIATION_INDEX, "instruction": {"type": "string"}}, ["instruction"]),
        category="copy",
    ),
]

TARGETING_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="addLocations",
        description="Add (or exclude) geographic locations for the campaign.",
        parameters=_params({
            "locations": {"type": "array", "items": _LOCATION, "description": "Locations to add"},
            "mode": {"type": "string", "enum": ["include", "exclude"]},
            "campaignId": _CAMPAIGN_ID,
        }, ["locations"]),
        category="targeting",
        scope=ToolScope.STEP,
        steps=("location",),
    ),
    ToolDescriptor(
        name="removeLocation",
        description="Remove one location from the campaign's targeting.",
        parameters=_params({"name": {"type": "string"}, "campaignId": _CAMPAIGN_ID}, ["name"]),
        category="targeting",
        execution=ToolExecution.CONFIRM,
        scope=ToolScope.STEP,
        steps=("location",),
        destructive=True,
    ),
    ToolDescriptor(
        name="clearLocations",
        description="Remove every location from the campaign's targeting.",
        parameters=_params({"campaignId": _CAMPAIGN_ID}),
        category="targeting",
        execution=ToolExecution.CONFIRM,
        scope=ToolScope.STEP,
        steps=("location",),
        destructive=True,
    ),
]

AUDIENCE_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="gatherAudienceInfo",
        description="Record what is known about the target audience so far and what to ask next.",
        parameters=_params({
            "currentDescription": {"type": "string"},
            "hasDemographics": {"type": "boolean"},
            "hasInterests": {"type": "boolean"},
            "hasBehaviors": {"type": "boolean"},
            "isComplete": {"type": "boolean"},
            "nextQuestion": {"type": "string"},
        }, ["currentDescription", "hasDemographics", "hasInterests", "hasBehaviors", "isComplete"]),
        category="audience",
        scope=ToolScope.STEP,
        steps=("audience",),
    ),
    ToolDescriptor(
        name="manualTargetingParameters",
        description="Produce concrete targeting parameters from the audience description.",
        parameters=_params({
            "description": {"type": "string"},
            "demographics": {
                "type": "object",
                "properties": {
                    "ageMin": {"type": "integer", "minimum": 18, "maximum": 65},
                    "ageMax": {"type": "integer", "minimum": 18, "maximum": 65},
                    "gender": {"type": "string", "enum": ["all", "male", "female"]},
                },
                "required": ["ageMin", "ageMax", "gender"],
            },
            "interests": {"type": "array", "items": {"type": "object"}},
            "behaviors": {"type": "array", "items": {"type": "object"}},
            "explanation": {"type": "string"},
        }, ["description", "demographics", "explanation"]),
        category="audience",
        scope=ToolScope.STEP,
        steps=("audience",),
    ),
]

CAMPAIGN_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="createAd",
        description="Create a new draft ad in the campaign.",
        parameters=_params({"name": {"type": "string"}, "campaignId": _CAMPAIGN_ID}),
        category="campaign",
    ),
    ToolDescriptor(
        name="renameAd",
        description="Rename an ad.",
        parameters=_params({"adId": {"type": "string"}, "name": {"type": "string"}}, ["adId", "name"]),
        category="campaign",
    ),
    ToolDescriptor(
        name="duplicateAd",
        description="Copy an existing ad into a new draft.",
        parameters=_params({"adId": {"type": "string"}}, ["adId"]),
        category="campaign",
    ),
    ToolDescriptor(
        name="deleteAd",
        description="Delete an ad from the campaign.",
        parameters=_params({"adId": {"type": "string"}}, ["adId"]),
        category="campaign",
        execution=ToolExecution.CONFIRM,
        destructive=True,
    ),
]

GOAL_TOOLS: list[ToolDescriptor] = [
    ToolDescriptor(
        name="setupGoal",
        description="Set the campaign objective.",
        parameters=_params({
            "goalType": {"type": "string", "enum": ["leads", "calls", "website-visits"]},
            "campaignId": _CAMPAIGN_ID,
        }, ["goalType"]),
        category="goal",
    ),
]

ALL_TOOLS: list[ToolDescriptor] = [
    *CREATIVE_TOOLS,
    *COPY_TOOLS,
    *TARGETING_TOOLS,
    *AUDIENCE_TOOLS,
    *CAMPAIGN_TOOLS,
    *GOAL_TOOLS,
]
