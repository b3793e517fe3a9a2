"""Argument parsing, repair and schema validation for tool calls."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Mapping

from adpilot.core.tools.errors import InvalidToolInputError, ToolCallRepairError
from adpilot.core.tools.metadata import ToolDescriptor


@dataclass
class ValidationError:
    """A single validation error."""

    field: str
    message: str
    code: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
}


def _validate_value(path: str, value: Any, schema: Mapping[str, Any]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    expected_type = schema.get("type")

    if isinstance(expected_type, str):
        expected = _TYPE_MAP.get(expected_type)
        # bool is an int subclass; reject it where a number is expected
        wrong_bool = isinstance(value, bool) and expected_type in ("integer", "number")
        if expected is not None and (wrong_bool or not isinstance(value, expected)):
            return [ValidationError(
                field=path,
                message=f"Expected {expected_type}, got {type(value).__name__}",
                code="TYPE_MISMATCH",
            )]

    enum = schema.get("enum")
    if isinstance(enum, list) and value not in enum:
        errors.append(ValidationError(
            field=path,
            message=f"Must be one of {enum}",
            code="INVALID_ENUM",
        ))

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        minimum = schema.get("minimum")
        maximum = schema.get("maximum")
        if isinstance(minimum, (int, float)) and value < minimum:
            errors.append(ValidationError(path, f"Must be >= {minimum}", "OUT_OF_RANGE"))
        if isinstance(maximum, (int, float)) and value > maximum:
            errors.append(ValidationError(path, f"Must be <= {maximum}", "OUT_OF_RANGE"))

    if isinstance(value, dict) and isinstance(schema.get("properties"), dict):
        errors.extend(_validate_object(path, value, schema))

    items = schema.get("items")
    if isinstance(value, list) and isinstance(items, dict):
        for i, item in enumerate(value):
            errors.extend(_validate_value(f"{path}[{i}]", item, items))

    return errors


def _validate_object(prefix: str, params: Mapping[str, Any], schema: Mapping[str, Any]) -> list[ValidationError]:
    errors: list[ValidationError] = []
    required_val = schema.get("required")
    required = required_val if isinstance(required_val, list) else []
    properties_val = schema.get("properties")
    properties = properties_val if isinstance(properties_val, dict) else {}

    for name in required:
        if name not in params or params[name] is None:
            errors.append(ValidationError(
                field=f"{prefix}.{name}" if prefix else name,
                message=f"Required field '{name}' is missing",
                code="MISSING_REQUIRED",
            ))

    for name, value in params.items():
        prop = properties.get(name)
        if not isinstance(prop, dict) or value is None:
            continue
        errors.extend(_validate_value(f"{prefix}.{name}" if prefix else name, value, prop))

    return errors


def validate_tool_input(tool: ToolDescriptor, params: Mapping[str, Any]) -> list[ValidationError]:
    """Validate params against the tool's JSON schema (required, types, enums, ranges)."""
    return _validate_object("", params, tool.parameters)


# -- argument decoding -------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def repair_tool_arguments(raw: str) -> dict[str, Any] | None:
    """Best-effort fix-up of malformed argument JSON from the model.

    Handles markdown fences, trailing commas, single-quoted keys/strings and
    unbalanced closing braces. Returns None when nothing works.
    """
    text = _FENCE_RE.sub("", raw.strip())
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    candidates = [text]
    if "'" in text and '"' not in text:
        candidates.append(text.replace("'", '"'))
    missing = text.count("{") - text.count("}")
    if missing > 0:
        candidates.append(text + "}" * missing)

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def parse_tool_arguments(tool: ToolDescriptor, tool_call_id: str, raw: str | None) -> dict[str, Any]:
    """Decode and validate a tool call's arguments.

    Raises:
        ToolCallRepairError: arguments are not a JSON object and repair failed
        InvalidToolInputError: arguments decoded but fail schema validation
    """
    params: Any
    if not raw or not raw.strip():
        params = {}
    else:
        try:
            params = json.loads(raw)
        except json.JSONDecodeError:
            params = repair_tool_arguments(raw)
            if params is None:
                raise ToolCallRepairError(
                    tool.name, tool_call_id, f"Could not repair arguments for {tool.name}: {raw[:200]!r}"
                )
    if not isinstance(params, dict):
        raise ToolCallRepairError(tool.name, tool_call_id, f"Arguments for {tool.name} must be a JSON object")

    # Locked values win before validation so a model that omits them still passes.
    merged = {**params, **tool.locked_args}
    errors = validate_tool_input(tool, merged)
    if errors:
        raise InvalidToolInputError(
            tool.name, tool_call_id, "; ".join(str(e) for e in errors)
        )
    return merged
