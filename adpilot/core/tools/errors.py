"""Tool-calling failures raised while handling the model's tool calls.

None of these fail a turn. The stream logs them, reports them to the client
as a tool error and feeds the error back to the model so it can recover.
"""

from __future__ import annotations


class ToolCallError(Exception):
    """Base class for recoverable tool-call failures."""

    kind = "tool-call-error"

    def __init__(self, tool_name: str, tool_call_id: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id
        self.message = message


class NoSuchToolError(ToolCallError):
    """The model asked for a tool that is not offered this turn."""

    kind = "no-such-tool"

    def __init__(self, tool_name: str, tool_call_id: str, available: list[str]) -> None:
        super().__init__(
            tool_name,
            tool_call_id,
            f"Tool '{tool_name}' is not available. Available tools: {', '.join(available) or 'none'}",
        )
        self.available = available


class InvalidToolInputError(ToolCallError):
    """Arguments parsed but do not satisfy the tool's schema."""

    kind = "invalid-tool-input"


class ToolCallRepairError(ToolCallError):
    """Arguments were not valid JSON and could not be repaired."""

    kind = "tool-call-repair-failed"


class ToolExecutionError(Exception):
    """An auto-executed tool failed on the campaign platform."""

    def __init__(self, tool_name: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.status_code = status_code
