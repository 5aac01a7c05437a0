"""WebSocket chat endpoint.

The socket runs two tasks in one task group: a writer relaying the
subscriber queue (with a heartbeat event after a quiet interval) and a
reader routing inbound frames to the chat room.  Whichever finishes first
cancels the group and ends the connection.
"""

from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, WebSocket, status
from starlette.websockets import WebSocketDisconnect

from livedraw.api.deps import get_context
from livedraw.auth import extract_identity_token
from livedraw.core.chat import ChatRoom
from livedraw.core.lifecycle import HEARTBEAT, ConnectionLifecycle
from livedraw.core.models import EventType, chat_event
from livedraw.core.registry import Subscriber
from livedraw.exceptions import AuthenticationError

logger = logging.getLogger("livedraw.api.chat_ws")

router = APIRouter(tags=["Chat"])

HEARTBEAT_MESSAGE = chat_event(EventType.HEARTBEAT)


async def _pump_outbound(websocket: WebSocket, lifecycle: ConnectionLifecycle) -> None:
    async for item in lifecycle.outbound():
        await websocket.send_text(HEARTBEAT_MESSAGE if item is HEARTBEAT else item)
    # Channel closed under us: dropped for falling behind, or shutting down.
    await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)


async def _pump_inbound(websocket: WebSocket, chat: ChatRoom, subscriber: Subscriber) -> None:
    while True:
        frame = await websocket.receive()
        if frame["type"] == "websocket.disconnect":
            return
        raw = frame.get("text")
        if raw is None:
            raw = frame.get("bytes") or b""
        await chat.handle_inbound(subscriber, raw)


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket) -> None:
    ctx = get_context(websocket)
    token = extract_identity_token(websocket)
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="ID token required")
        return

    await websocket.accept()
    lifecycle = ConnectionLifecycle(
        ctx.chat_registry,
        verifier=ctx.verifier,
        on_attach=ctx.chat.attach,
        on_detach=ctx.chat.detach,
        heartbeat_interval=ctx.settings.ws_heartbeat_interval,
    )
    try:
        await lifecycle.authenticate(token)
    except AuthenticationError as exc:
        await websocket.send_text(chat_event(EventType.ERROR, {"message": exc.message}))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async with lifecycle:
        subscriber = await lifecycle.open()
        logger.info(
            "WebSocket chat connected: %s",
            subscriber.user_id,
            extra={"user_id": subscriber.user_id, "subscribers": ctx.chat.online_count()},
        )
        async with anyio.create_task_group() as task_group:

            async def run_until_done(pump, *args) -> None:
                try:
                    await pump(*args)
                except WebSocketDisconnect:
                    pass
                except Exception as exc:
                    logger.warning(
                        "WebSocket chat for %s ended with error: %r",
                        subscriber.user_id,
                        exc,
                        extra={"user_id": subscriber.user_id},
                    )
                finally:
                    task_group.cancel_scope.cancel()

            task_group.start_soon(run_until_done, _pump_outbound, websocket, lifecycle)
            task_group.start_soon(run_until_done, _pump_inbound, websocket, ctx.chat, subscriber)

    logger.info(
        "WebSocket chat disconnected: %s",
        subscriber.user_id,
        extra={"user_id": subscriber.user_id, "subscribers": ctx.chat.online_count()},
    )
