"""Server-sent events helpers."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator


def format_sse(
    event_type: str | None,
    data: dict[str, Any],
    event_id: int | str | None = None,
) -> str:
    """
    Format a single SSE event payload.

    event_type=None emits an unnamed event, delivered to EventSource.onmessage.
    """
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    if event_type:
        lines.append(f"event: {event_type}")
    lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


def format_sse_comment(comment: str = "ping") -> str:
    """Format a comment event to prompt early flush through proxies."""
    return f": {comment}\n\n"


def sse_preamble(padding_bytes: int = 2048, retry_ms: int | None = None) -> str:
    """Send a padding comment to encourage proxies to flush SSE early."""
    if padding_bytes < 1:
        padding_bytes = 1
    preamble = format_sse_comment(" " * padding_bytes)
    if retry_ms is not None:
        preamble += f"retry: {retry_ms}\n\n"
    return preamble


async def iter_sse_events(
    lines: AsyncIterator[str],
) -> AsyncIterator[tuple[str | None, str | None, str]]:
    """
    Parse an SSE line stream into (event_id, event_type, data) tuples.

    Comments and `retry:` lines are skipped; multi-line data is joined with newlines.
    """
    event_id: str | None = None
    event_type: str | None = None
    data: list[str] = []
    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event_id, event_type, "\n".join(data)
            event_type = None
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data.append(value)
        elif field == "id":
            event_id = value
        elif field == "event":
            event_type = value
    if data:
        yield event_id, event_type, "\n".join(data)


STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Content-Encoding": "identity",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
