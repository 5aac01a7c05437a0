"""Server-Sent Events framing for ticker and chat streams."""

from __future__ import annotations

from collections.abc import AsyncIterator

from starlette.responses import StreamingResponse

from livedraw.core.lifecycle import HEARTBEAT, ConnectionLifecycle

HEARTBEAT_FRAME = ": heartbeat\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def data_frame(message: str) -> str:
    """Frame an encoded message as a default SSE ``message`` event."""
    return f"data: {message}\n\n"


async def relay(lifecycle: ConnectionLifecycle) -> AsyncIterator[str]:
    """Open *lifecycle* and yield its outbound traffic as SSE frames.

    The connection is closed when the client goes away (the generator is
    cancelled or closed) or when the subscriber is dropped for falling
    behind.
    """
    async with lifecycle:
        await lifecycle.open()
        async for item in lifecycle.outbound():
            if item is HEARTBEAT:
                yield HEARTBEAT_FRAME
            else:
                yield data_frame(item)


def event_stream(lifecycle: ConnectionLifecycle) -> StreamingResponse:
    return StreamingResponse(relay(lifecycle), media_type="text/event-stream", headers=SSE_HEADERS)
