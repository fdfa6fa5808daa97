"""
Streaming Response Utilities

Server-Sent Events rendering of generation events.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from starlette.responses import StreamingResponse as StarletteStreamingResponse

from quarry.runtime.orchestrator import GenerationEvent


def format_sse(data: Any, event: str | None = None, id: str | None = None) -> str:
    """Format one event according to the SSE spec."""
    lines = []

    if event:
        lines.append(f"event: {event}")

    if id:
        lines.append(f"id: {id}")

    if isinstance(data, (dict, list)):
        data = json.dumps(data, default=str)

    for line in str(data).split("\n"):
        lines.append(f"data: {line}")

    lines.append("")  # Empty line to end event

    return "\n".join(lines) + "\n"


async def stream_sse(events: AsyncIterator[GenerationEvent]) -> AsyncIterator[str]:
    """
    Render generation events as SSE.

    Closing this iterator (client disconnect) closes the event source,
    which cancels the in-flight generation.
    """
    event_id = 0
    try:
        async for event in events:
            event_id += 1
            yield format_sse(event.data, event=event.type.value, id=str(event_id))
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


def StreamingResponse(
    content: AsyncIterator[str],
    media_type: str = "text/event-stream",
    **kwargs: Any,
) -> StarletteStreamingResponse:
    """Create a streaming response for SSE."""
    return StarletteStreamingResponse(
        content,
        media_type=media_type,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
        **kwargs,
    )
