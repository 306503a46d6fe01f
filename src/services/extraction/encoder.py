"""Render extraction events as Server-Sent Event frames.

Each event becomes `event: <type>\\ndata: <json>\\n\\n`. The encoder is a
plain consumer of the session's event iterator; it never inspects or
reorders events.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator

from schemas.extraction import ExtractionEvent
from services.extraction.exceptions import GENERIC_ERROR_MESSAGE


logger = logging.getLogger(__name__)

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering so frames reach the browser as they are written
    "X-Accel-Buffering": "no",
}


def encode_event(event: ExtractionEvent) -> str:
    return event.to_sse()


async def encode_stream(events: AsyncIterable[ExtractionEvent]) -> AsyncIterator[str]:
    """Encode every event; an unexpected failure ends the stream with `error`.

    The stream never ends without a terminal frame once it has started: if
    the source raises before producing `complete` or `error`, a generic error
    frame is written instead of the exception text.
    """
    terminal_sent = False
    try:
        async for event in events:
            terminal_sent = terminal_sent or event.is_terminal
            yield encode_event(event)
    except Exception:
        logger.exception("Extraction event stream failed")
        if not terminal_sent:
            yield encode_event(
                ExtractionEvent.error(GENERIC_ERROR_MESSAGE, error_code="internal_error")
            )
