"""Tool descriptor model and enums."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class ToolExecution(str, Enum):
    AUTO = "auto"        # run server-side, result fed straight back to the model
    CONFIRM = "confirm"  # surfaced to the client; takes effect only after the user confirms


class ToolScope(str, Enum):
    GLOBAL = "global"  # offered in every mode
    EDIT = "edit"      # needs edit mode + a concrete editing target
    STEP = "step"      # only inside the listed workflow steps


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameters: Mapping[str, Any]
    category: str
    execution: ToolExecution = ToolExecution.AUTO
    scope: ToolScope = ToolScope.GLOBAL
    steps: tuple[str, ...] = ()
    destructive: bool = False
    # Argument values pinned by the registry for this turn (edit-mode locks).
    locked_args: Mapping[str, Any] = field(default_factory=dict)

    @property
    def requires_confirmation(self) -> bool:
        return self.execution is ToolExecution.CONFIRM

    def with_locks(self, locks: Mapping[str, Any]) -> "ToolDescriptor":
        return replace(self, locked_args=dict(locks))

    def schema(self) -> dict[str, Any]:
        """OpenAI function-calling schema for this tool.

        Locked arguments stay in the schema (the model may still echo them);
        the executor overrides whatever it sends.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters),
            },
        }
