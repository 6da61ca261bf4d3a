"""Server-sent event framing for turn streams."""
import json
import logging
from typing import Any, AsyncIterator, Dict

logger = logging.getLogger(__name__)


def format_sse(event: Dict[str, Any]) -> str:
    payload = {k: v for k, v in event.items() if k != "type"}
    return f"event: {event.get('type', 'message')}\ndata: {json.dumps(payload, default=str)}\n\n"


async def create_sse_stream(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    """
    Frame turn events as SSE messages.

    event: text
    data: {"delta": "..."}
    """
    async for event in events:
        yield format_sse(event)
