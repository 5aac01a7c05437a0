"""Result ticker routes: producer ingress, current snapshot, live stream, archive."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError as PydanticValidationError

from livedraw.api.deps import get_context
from livedraw.api.sse import event_stream
from livedraw.auth import require_api_key
from livedraw.core.context import AppContext
from livedraw.core.lifecycle import ConnectionLifecycle
from livedraw.core.models import ResultUpdate
from livedraw.exceptions import ValidationError

logger = logging.getLogger("livedraw.api.results")

router = APIRouter(prefix="/api/burma2d", tags=["Results"])


@router.post(
    "/update",
    summary="Replace the current result snapshot",
    dependencies=[Depends(require_api_key)],
)
async def update_results(request: Request, ctx: AppContext = Depends(get_context)):
    """Producer ingress. The body uses the legacy keys (``1200``, ``430set``, ...)."""
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError("Invalid JSON format") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON format")
    try:
        update = ResultUpdate.model_validate(payload)
    except PydanticValidationError as exc:
        logger.info("Rejected result update: %s", exc.errors(include_url=False))
        raise ValidationError("Invalid JSON format") from exc

    result = await ctx.feed.apply_update(update)
    return {
        "status": "success",
        "message": "Data updated successfully",
        "data": result.model_dump(),
    }


@router.get("/live", summary="Current snapshot with active viewer count")
async def get_live(ctx: AppContext = Depends(get_context)):
    return {"status": "success", "data": ctx.feed.current()}


@router.get("/stream", summary="SSE stream of snapshot updates")
async def stream_results(ctx: AppContext = Depends(get_context)):
    lifecycle = ConnectionLifecycle(
        ctx.results,
        on_attach=ctx.feed.attach,
        heartbeat_interval=ctx.settings.heartbeat_interval,
    )
    return event_stream(lifecycle)


@router.get("/history", summary="Archived evening results")
async def get_history(
    limit: int = Query(default=30, ge=1, le=365),
    offset: int = Query(default=0, ge=0),
    ctx: AppContext = Depends(get_context),
):
    rows = await ctx.db.list_result_history(limit=limit, offset=offset)
    return {"status": "success", "count": len(rows), "data": rows}
