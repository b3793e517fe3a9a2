"""
Workflow metadata parsing.

Every inbound chat message carries a free-form ``metadata`` side-channel from
the campaign builder UI (which tab is open, which wizard step, whether the
user is editing a specific ad variation, location setup input...). That
document is untrusted: fields may be missing, mistyped or nested wrongly.

``parse_workflow_metadata`` turns it into a typed, frozen ``WorkflowContext``
field by field. It never raises; bad values fall back to defaults and
inconsistent combinations are logged as warnings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional

from adpilot.config import KNOWN_GOALS

logger = logging.getLogger(__name__)

COPY_FIELDS: tuple[str, ...] = ("primaryText", "headline", "description")

_MAX_TEXT = 2_000


class WorkflowMode(str, Enum):
    """Coarse mode the prompt and tool set are built for."""

    SETUP = "setup"
    RESULTS = "results"
    EDIT = "edit"
    LOCATION_SETUP = "location_setup"


@dataclass(frozen=True)
class EditingReference:
    """The ad variation the user has pinned for editing."""

    variation_index: Optional[int] = None
    image_url: Optional[str] = None
    variation_title: Optional[str] = None
    format: Optional[str] = None
    content: Mapping[str, str] = field(default_factory=dict)
    fields: tuple[str, ...] = ()
    session_id: Optional[str] = None

    @property
    def has_target(self) -> bool:
        """True when the reference points at a concrete variation."""
        return self.variation_index is not None

    @property
    def is_copy_edit(self) -> bool:
        if self.fields:
            return any(f in COPY_FIELDS for f in self.fields)
        return bool(self.content)


@dataclass(frozen=True)
class WorkflowContext:
    """Per-turn workflow state derived from message metadata."""

    active_tab: str = "setup"
    campaign_id: Optional[str] = None
    current_step: Optional[str] = None
    goal: Optional[str] = None
    edit_mode: bool = False
    editing_reference: Optional[EditingReference] = None
    location_setup_mode: bool = False
    location_input: str = ""
    location_mode: Optional[str] = None

    @property
    def mode(self) -> WorkflowMode:
        if self.location_setup_mode and self.location_input:
            return WorkflowMode.LOCATION_SETUP
        if self.edit_mode and self.editing_reference is not None:
            return WorkflowMode.EDIT
        if self.active_tab == "results":
            return WorkflowMode.RESULTS
        return WorkflowMode.SETUP

    @property
    def edit_target(self) -> Optional[EditingReference]:
        """The editing reference, only when edit mode is on and it resolves to a variation."""
        ref = self.editing_reference
        if self.edit_mode and ref is not None and ref.has_target:
            return ref
        return None

    def with_goal(self, goal: Optional[str]) -> "WorkflowContext":
        return replace(self, goal=goal)


# -- field parsers ----------------------------------------------------------


def _str(value: Any, *, limit: int = _MAX_TEXT) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        return value[:limit] or None
    return None


def _bool(value: Any) -> bool:
    # Only real booleans count; "false" or 1 from a sloppy client do not.
    return value is True


def _int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _choice(value: Any, allowed: tuple[str, ...]) -> Optional[str]:
    return value if isinstance(value, str) and value in allowed else None


def parse_goal(value: Any) -> Optional[str]:
    """Normalise a goal value; unknown goals are treated as unset."""
    return _choice(value, KNOWN_GOALS)


def _parse_editing_reference(raw: Any) -> Optional[EditingReference]:
    if not isinstance(raw, Mapping):
        return None

    content: dict[str, str] = {}
    raw_content = raw.get("content")
    if isinstance(raw_content, Mapping):
        for key in COPY_FIELDS:
            text = _str(raw_content.get(key))
            if text:
                content[key] = text

    fields: tuple[str, ...] = ()
    raw_meta = raw.get("metadata")
    if isinstance(raw_meta, Mapping) and isinstance(raw_meta.get("fields"), list):
        fields = tuple(f for f in raw_meta["fields"] if isinstance(f, str))

    session_id = None
    raw_session = raw.get("editSession")
    if isinstance(raw_session, Mapping):
        session_id = _str(raw_session.get("sessionId"), limit=128)

    return EditingReference(
        variation_index=_int(raw.get("variationIndex")),
        image_url=_str(raw.get("imageUrl")),
        variation_title=_str(raw.get("variationTitle"), limit=200),
        format=_str(raw.get("format"), limit=50),
        content=content,
        fields=fields,
        session_id=session_id,
    )


def parse_workflow_metadata(message: Mapping[str, Any] | Any) -> WorkflowContext:
    """Build a ``WorkflowContext`` from an inbound message.

    Accepts either a mapping with a ``metadata`` key or any object with a
    ``metadata`` attribute (the request model). Never raises.
    """
    if isinstance(message, Mapping):
        raw = message.get("metadata")
    else:
        raw = getattr(message, "metadata", None)
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(f"Ignoring non-object message metadata ({type(raw).__name__})")
        raw = {}

    ctx = WorkflowContext(
        active_tab="results" if raw.get("activeTab") == "results" else "setup",
        campaign_id=_str(raw.get("campaignId"), limit=64),
        current_step=_str(raw.get("currentStep"), limit=64),
        goal=parse_goal(raw.get("goalType")),
        edit_mode=_bool(raw.get("editMode")),
        editing_reference=_parse_editing_reference(raw.get("editingReference")),
        location_setup_mode=_bool(raw.get("locationSetupMode")),
        location_input=_str(raw.get("locationInput"), limit=500) or "",
        location_mode=_choice(raw.get("locationMode"), ("include", "exclude")),
    )

    if ctx.location_setup_mode and not ctx.location_input:
        logger.warning("Location setup mode is on but no location input was supplied")
    if ctx.edit_mode and ctx.editing_reference is None:
        logger.warning("Edit mode is on but no editing reference was supplied; edit tools withheld")
    elif ctx.edit_mode and ctx.editing_reference is not None and not ctx.editing_reference.has_target:
        logger.warning("Editing reference has no variation index; edit tools withheld")

    return ctx


# -- derived text / snapshots ----------------------------------------------


def build_reference_context(ref: Optional[EditingReference]) -> str:
    """Describe the variation being edited and the tool the model has to use."""
    if ref is None:
        return ""

    lines = [f"[USER IS EDITING: {ref.variation_title or 'ad variation'}"
             + (f" ({ref.format} format)" if ref.format else "") + "]"]
    if ref.image_url:
        lines.append(f"Image URL: {ref.image_url}")
    if ref.variation_index is not None:
        lines.append(f"Variation Index: {ref.variation_index}")
    if ref.content:
        lines.append("Current content:")
        labels = {"primaryText": "Primary Text", "headline": "Headline", "description": "Description"}
        for key in COPY_FIELDS:
            if key in ref.content:
                lines.append(f'- {labels[key]}: "{ref.content[key]}"')

    lines.append("")
    if ref.is_copy_edit:
        lines.append("**You MUST call editCopy tool**")
        lines.append("Required parameters:")
        lines.append(f"- variationIndex: {ref.variation_index}")
        lines.append("- current: {primaryText, headline, description} from above")
        lines.append("- prompt: User's instruction")
    else:
        lines.append("**You MUST use editVariation or regenerateVariation**")
        lines.append("Required parameters:")
        lines.append(f"- imageUrl: {ref.image_url}")
        lines.append(f"- variationIndex: {ref.variation_index}")

    return "\n".join(lines)


def build_journey_metadata(ctx: WorkflowContext) -> dict[str, Any]:
    """Compact camelCase snapshot stored on the persisted user message."""
    meta: dict[str, Any] = {"activeTab": ctx.active_tab}
    if ctx.current_step:
        meta["currentStep"] = ctx.current_step
    if ctx.goal:
        meta["goalType"] = ctx.goal
    if ctx.campaign_id:
        meta["campaignId"] = ctx.campaign_id
    if ctx.edit_mode:
        meta["editMode"] = True
        if ctx.editing_reference is not None and ctx.editing_reference.variation_index is not None:
            meta["variationIndex"] = ctx.editing_reference.variation_index
    if ctx.location_setup_mode:
        meta["locationSetupMode"] = True
        meta["locationInput"] = ctx.location_input
        if ctx.location_mode:
            meta["locationMode"] = ctx.location_mode
    return meta
