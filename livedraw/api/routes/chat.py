"""Chat REST routes and the SSE chat stream."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from livedraw.api.deps import get_context
from livedraw.api.limits import limiter
from livedraw.api.sse import event_stream
from livedraw.auth import extract_identity_token, require_api_key
from livedraw.core.context import AppContext
from livedraw.core.lifecycle import ConnectionLifecycle
from livedraw.core.models import Identity
from livedraw.exceptions import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger("livedraw.api.chat")
_audit_logger = logging.getLogger("livedraw.audit")

router = APIRouter(prefix="/api/burma2d/chat", tags=["Chat"])
admin_router = APIRouter(
    prefix="/api/burma2d/chat/admin",
    tags=["Chat Admin"],
    dependencies=[Depends(require_api_key)],
)

DEFAULT_BAN_REASON = "Violation of community guidelines"


class GoogleAuthRequest(BaseModel):
    id_token: str = Field(min_length=1)
    email: str = ""
    username: str = ""
    photo_url: str = ""


class SendMessageRequest(BaseModel):
    user_id: str = Field(min_length=1)
    message: str


class BlockRequest(BaseModel):
    blocker_id: str = Field(min_length=1)
    blocked_id: str = Field(min_length=1)


class BanRequest(BaseModel):
    user_id: str = Field(min_length=1)
    reason: str = ""
    banned_by: str = ""


class UnbanRequest(BaseModel):
    user_id: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Sign-in & presence
# ---------------------------------------------------------------------------


@router.post("/auth/google", summary="Verify an ID token and register the chat user")
@limiter.limit("30/minute")
async def google_auth(
    request: Request, body: GoogleAuthRequest, ctx: AppContext = Depends(get_context)
):
    if ctx.verifier is None:
        raise AuthenticationError("Identity verification is not configured")

    result = await ctx.verifier.authenticate(body.id_token)
    if not result.authenticated:
        _audit_logger.warning(
            "Chat sign-in rejected from %s",
            request.client.host if request.client else "unknown",
            extra={
                "event_category": "audit",
                "action": "auth_failure",
                "provider": result.provider,
                "error": result.error,
            },
        )
        raise AuthenticationError("Invalid ID token")

    identity = result.to_identity()
    # Client-supplied profile fields only fill gaps the token leaves.
    updates = {}
    if not result.claims.get("name") and body.username:
        updates["username"] = body.username
    if not identity.photo_url and body.photo_url:
        updates["photo_url"] = body.photo_url
    if updates:
        identity = identity.model_copy(update=updates)

    await ctx.db.upsert_user(identity, online=ctx.presence.is_online(identity.user_id))
    return {
        "user_id": identity.user_id,
        "username": identity.username,
        "photo_url": identity.photo_url,
        "message": "Authentication successful",
    }


@router.get("/users/online", summary="Online users, minus those the viewer blocked")
async def online_users(
    user_id: str | None = Query(default=None, description="Viewer whose blocks apply"),
    ctx: AppContext = Depends(get_context),
):
    users = await ctx.db.list_online_users(user_id)
    return {"success": True, "count": len(users), "users": users}


@router.get("/online/count", summary="Open chat connections")
async def online_count(ctx: AppContext = Depends(get_context)):
    return {"count": ctx.chat.online_count()}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.post("/messages", summary="Send a chat message")
@limiter.limit("60/minute")
async def send_message(
    request: Request, body: SendMessageRequest, ctx: AppContext = Depends(get_context)
):
    user = await ctx.db.get_user(body.user_id)
    if user is None:
        raise AuthenticationError("User not found")

    identity = Identity(
        user_id=user["user_id"], username=user["username"], photo_url=user["photo_url"]
    )
    message = await ctx.chat.post_message(identity, body.message)
    return {"message_id": message.id, "message": message.message}


@router.get("/messages", summary="Recent messages, hiding senders the viewer blocked")
async def recent_messages(
    user_id: str | None = Query(default=None, description="Viewer whose blocks apply"),
    limit: int = Query(default=30, ge=1, le=200),
    ctx: AppContext = Depends(get_context),
):
    messages = await ctx.db.get_recent_messages(limit=limit, viewer_id=user_id)
    return {"success": True, "messages": [m.model_dump(mode="json") for m in messages]}


# ---------------------------------------------------------------------------
# Blocking
# ---------------------------------------------------------------------------


@router.post("/block", summary="Hide a user's messages from the blocker")
async def block_user(body: BlockRequest, ctx: AppContext = Depends(get_context)):
    if body.blocker_id == body.blocked_id:
        raise ValidationError("Users cannot block themselves")
    already = await ctx.db.is_blocked(body.blocker_id, body.blocked_id)
    if not already:
        await ctx.db.block(body.blocker_id, body.blocked_id)
    return {"success": True, "already_blocked": already}


@router.post("/unblock", summary="Remove a block")
async def unblock_user(body: BlockRequest, ctx: AppContext = Depends(get_context)):
    removed = await ctx.db.unblock(body.blocker_id, body.blocked_id)
    return {"success": True, "removed": removed}


@router.get("/blocked", summary="Users the given user has blocked")
async def blocked_users(
    user_id: str = Query(min_length=1), ctx: AppContext = Depends(get_context)
):
    blocked = await ctx.db.list_blocked(user_id)
    return {"success": True, "blocked": blocked}


# ---------------------------------------------------------------------------
# SSE stream
# ---------------------------------------------------------------------------


@router.get("/stream", summary="SSE chat stream")
async def chat_stream(request: Request, ctx: AppContext = Depends(get_context)):
    """Authenticated chat stream. Pass the ID token as a Bearer header or ``idtoken``."""
    lifecycle = ConnectionLifecycle(
        ctx.chat_registry,
        verifier=ctx.verifier,
        on_attach=ctx.chat.attach,
        on_detach=ctx.chat.detach,
        heartbeat_interval=ctx.settings.heartbeat_interval,
    )
    await lifecycle.authenticate(extract_identity_token(request))
    return event_stream(lifecycle)


# ---------------------------------------------------------------------------
# Admin: ban management
# ---------------------------------------------------------------------------


@admin_router.post("/ban", summary="Ban a user and delete their messages")
async def ban_user(body: BanRequest, ctx: AppContext = Depends(get_context)):
    user = await ctx.db.get_user(body.user_id)
    if user is None:
        raise NotFoundError("User not found")

    reason = body.reason or DEFAULT_BAN_REASON
    deleted = await ctx.db.ban_user(
        body.user_id, user["username"], body.banned_by or "admin", reason
    )
    logger.info(
        "User banned: %s, deleted %d message(s)",
        body.user_id,
        deleted,
        extra={"user_id": body.user_id},
    )
    return {
        "message": "User banned successfully",
        "user_id": body.user_id,
        "username": user["username"],
        "deleted_messages": deleted,
        "reason": reason,
    }


@admin_router.post("/unban", summary="Lift a ban")
async def unban_user(body: UnbanRequest, ctx: AppContext = Depends(get_context)):
    if not await ctx.db.unban_user(body.user_id):
        raise NotFoundError("User not found in banned list")
    logger.info("User unbanned: %s", body.user_id, extra={"user_id": body.user_id})
    return {"message": "User unbanned successfully", "user_id": body.user_id}


@admin_router.get("/banned", summary="List banned users")
async def banned_users(ctx: AppContext = Depends(get_context)):
    banned = await ctx.db.list_banned()
    return {"banned_users": banned, "count": len(banned)}


@admin_router.get("/messages", summary="All messages, newest first")
async def all_messages(
    limit: int = Query(default=100, ge=1, le=1000), ctx: AppContext = Depends(get_context)
):
    messages = await ctx.db.get_all_messages(limit=limit)
    return {"messages": [m.model_dump(mode="json") for m in messages], "count": len(messages)}
