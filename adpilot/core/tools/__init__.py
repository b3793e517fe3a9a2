"""
Tool catalog, per-turn gating, argument validation and execution.

- metadata.py:    ToolDescriptor and enums
- definitions.py: the catalog (OpenAI function schemas)
- registry.py:    build_tool_registry, get_tools (workflow gating)
- validation.py:  parse/repair/validate tool-call arguments
- executor.py:    run AUTO tools on the campaign platform
- errors.py:      recoverable tool-call failures
"""

from adpilot.core.tools.errors import (
    InvalidToolInputError,
    NoSuchToolError,
    ToolCallError,
    ToolCallRepairError,
    ToolExecutionError,
)
from adpilot.core.tools.metadata import ToolDescriptor, ToolExecution, ToolScope
from adpilot.core.tools.registry import (
    build_tool_registry,
    get_tool_descriptor,
    get_tools,
    tool_schemas,
)

__all__ = [
    "ToolDescriptor",
    "ToolExecution",
    "ToolScope",
    "build_tool_registry",
    "get_tool_descriptor",
    "get_tools",
    "tool_schemas",
    "ToolCallError",
    "NoSuchToolError",
    "InvalidToolInputError",
    "ToolCallRepairError",
    "ToolExecutionError",
]
