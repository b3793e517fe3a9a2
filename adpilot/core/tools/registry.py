"""Tool registry: build the catalog, look tools up, and gate them per turn."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from adpilot.core.tools.definitions import ALL_TOOLS
from adpilot.core.tools.metadata import ToolDescriptor, ToolExecution, ToolScope
from adpilot.core.workflow import EditingReference, WorkflowContext

logger = logging.getLogger(__name__)

_TOOLS: dict[str, ToolDescriptor] = {}

# Starting a fresh batch while one variation is pinned would overwrite the
# user's work in progress.
_WITHHELD_WHILE_EDITING = frozenset({"generateVariations", "generateCopyVariations"})


def _register(tool: ToolDescriptor) -> None:
    if tool.destructive and tool.execution is not ToolExecution.CONFIRM:
        raise ValueError(f"Destructive tool {tool.name} must require confirmation")
    if tool.name in _TOOLS:
        raise ValueError(f"Duplicate tool name {tool.name}")
    _TOOLS[tool.name] = tool


def build_tool_registry() -> dict[str, ToolDescriptor]:
    if _TOOLS:
        return _TOOLS
    for tool in ALL_TOOLS:
        _register(tool)
    return _TOOLS


def get_tool_descriptor(name: str) -> Optional[ToolDescriptor]:
    return build_tool_registry().get(name)


def _edit_locks(tool: ToolDescriptor, ref: EditingReference) -> dict[str, Any]:
    locks: dict[str, Any] = {"variationIndex": ref.variation_index}
    if tool.name == "editVariation" and ref.image_url:
        locks["imageUrl"] = ref.image_url
    return locks


def _step_allows(tool: ToolDescriptor, ctx: WorkflowContext) -> bool:
    if ctx.current_step in tool.steps:
        return True
    # Location setup from the map widget can happen on any step.
    return "location" in tool.steps and ctx.location_setup_mode and bool(ctx.location_input)


def get_tools(ctx: WorkflowContext) -> dict[str, ToolDescriptor]:
    """Return the tools the model may call this turn, keyed by name.

    Pure function of ``ctx``: no I/O, and returned descriptors are frozen.
    Rules:
      * location setup mode with input offers ``addLocations`` only
      * EDIT-scoped tools need edit mode and a reference with a variation
        index; their target arguments are locked to that reference
      * STEP-scoped tools are offered only inside their steps
      * destructive tools always require confirmation (enforced at registration)
    """
    registry = build_tool_registry()

    if ctx.location_setup_mode and ctx.location_input:
        return {"addLocations": registry["addLocations"]}

    target = ctx.edit_target
    tools: dict[str, ToolDescriptor] = {}
    for name, tool in registry.items():
        if tool.scope is ToolScope.EDIT:
            if target is None:
                continue
            tool = tool.with_locks(_edit_locks(tool, target))
        elif tool.scope is ToolScope.STEP and not _step_allows(tool, ctx):
            continue
        if target is not None and name in _WITHHELD_WHILE_EDITING:
            continue
        tools[name] = tool

    return tools


def tool_schemas(tools: Mapping[str, ToolDescriptor]) -> list[dict[str, Any]]:
    """OpenAI ``tools`` payload for the given descriptors, in catalog order."""
    return [tool.schema() for tool in tools.values()]
