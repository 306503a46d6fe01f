"""Schemas for menu extraction SSE streaming."""

from __future__ import annotations

import json
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from schemas.menus import ExtractedMenuItem, MenuMetadata


EventType = Literal[
    "status",
    "progress",
    "metadata",
    "item",
    "menu_extraction_end",
    "firstItem",
    "complete",
    "error",
]

TERMINAL_EVENTS: frozenset[str] = frozenset({"complete", "error"})


def _cart_id(cart_id: UUID | None) -> str | None:
    return str(cart_id) if cart_id is not None else None


class ExtractionEvent(BaseModel):
    """Canonical SSE envelope for menu extraction streaming.

    `event` is the SSE event name; `data` is the JSON payload written on the
    `data:` line. Build instances with the classmethods below so payload keys
    stay consistent with what the client expects.
    """

    event: EventType
    data: dict[str, Any] = Field(default_factory=dict)
    # Kept server-side for logging; never written to the wire
    error_code: str | None = Field(default=None, exclude=True)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def to_sse(self) -> str:
        """Serialize to one SSE frame."""
        payload = json.dumps(self.data, separators=(",", ":"), ensure_ascii=False)
        return f"event: {self.event}\ndata: {payload}\n\n"

    @classmethod
    def status(cls, message: str) -> ExtractionEvent:
        return cls(event="status", data={"message": message})

    @classmethod
    def progress(cls, current: int, total: int) -> ExtractionEvent:
        return cls(event="progress", data={"current": current, "total": total})

    @classmethod
    def metadata(cls, metadata: MenuMetadata) -> ExtractionEvent:
        return cls(event="metadata", data=metadata.to_event_payload())

    @classmethod
    def item(
        cls, item: ExtractedMenuItem, category: str, cart_id: UUID | None
    ) -> ExtractionEvent:
        return cls(
            event="item",
            data={
                "item": item.to_event_payload(),
                "category": category,
                "cartId": _cart_id(cart_id),
            },
        )

    @classmethod
    def extraction_end(cls) -> ExtractionEvent:
        return cls(event="menu_extraction_end", data={"status": "complete"})

    @classmethod
    def first_item(
        cls, cart_id: UUID, restaurant_name: str, item: ExtractedMenuItem
    ) -> ExtractionEvent:
        return cls(
            event="firstItem",
            data={
                "cartId": _cart_id(cart_id),
                "restaurantName": restaurant_name,
                "item": item.to_event_payload(),
            },
        )

    @classmethod
    def complete(cls, cart_id: UUID, restaurant_name: str) -> ExtractionEvent:
        return cls(
            event="complete",
            data={"cartId": _cart_id(cart_id), "restaurantName": restaurant_name},
        )

    @classmethod
    def error(cls, message: str, error_code: str | None = None) -> ExtractionEvent:
        return cls(event="error", data={"error": message}, error_code=error_code)
