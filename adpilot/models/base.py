"""Pydantic base for wire models: snake_case in Python, camelCase in JSON."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


def to_camel(name: str) -> str:
    """``campaign_id`` -> ``campaignId``."""
    head, *rest = name.split("_")
    return head + "".join(w.capitalize() for w in rest)


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase on the wire.

    Both spellings are accepted on input (``populate_by_name``); use
    ``wire()`` for the JSON-ready camelCase dict.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
