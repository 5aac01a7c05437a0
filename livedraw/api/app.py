"""FastAPI application for livedraw.

Endpoints:
  POST   /api/burma2d/update                 - Producer ingress (API key)
  GET    /api/burma2d/live                   - Current snapshot with active viewers
  GET    /api/burma2d/stream                 - SSE result ticker
  GET    /api/burma2d/history                - Archived evening results
  POST   /api/burma2d/chat/auth/google       - Verify ID token, register chat user
  GET    /api/burma2d/chat/users/online      - Online users minus the viewer's blocks
  POST   /api/burma2d/chat/messages          - Send a message
  GET    /api/burma2d/chat/messages          - Recent messages
  POST   /api/burma2d/chat/block             - Block a user
  POST   /api/burma2d/chat/unblock           - Unblock a user
  GET    /api/burma2d/chat/blocked           - Blocked users
  GET    /api/burma2d/chat/online/count      - Open chat connections
  GET    /api/burma2d/chat/stream            - SSE chat stream
  POST   /api/burma2d/chat/admin/ban         - Ban a user (API key)
  POST   /api/burma2d/chat/admin/unban       - Lift a ban (API key)
  GET    /api/burma2d/chat/admin/banned      - Banned users (API key)
  GET    /api/burma2d/chat/admin/messages    - All messages (API key)
  WS     /ws/chat                            - WebSocket chat
  GET    /health                             - Health check
  GET    /metrics                            - Prometheus metrics
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

import livedraw
from livedraw.api.limits import limiter
from livedraw.api.routes import chat, chat_ws, results
from livedraw.config import settings
from livedraw.core.context import AppContext
from livedraw.exceptions import LiveDrawError
from livedraw.logging_config import log_startup_info, setup_logging

logger = logging.getLogger("livedraw")
_audit_logger = logging.getLogger("livedraw.audit")

_STARTUP_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _STARTUP_TIME
    _STARTUP_TIME = time.monotonic()
    setup_logging()
    await app.state.context.startup()
    log_startup_info()
    yield
    # Graceful shutdown: end open streams, flush presence writes, close DB
    logger.info("Shutting down - closing open streams")
    await app.state.context.shutdown()
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# OpenAPI tags
# ---------------------------------------------------------------------------
_OPENAPI_TAGS = [
    {"name": "Health", "description": "Health checks and version info"},
    {"name": "Results", "description": "Live result snapshot, ticker stream and archive"},
    {"name": "Chat", "description": "Chat messages, presence, blocking and streams"},
    {"name": "Chat Admin", "description": "Ban management and moderation"},
    {"name": "Metrics", "description": "Prometheus metrics endpoint"},
]

app = FastAPI(
    title="livedraw",
    description="Real-time 2D result ticker and chat fan-out service.",
    version=livedraw.__version__,
    lifespan=lifespan,
    openapi_tags=_OPENAPI_TAGS,
)

app.state.context = AppContext.build(settings)
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(LiveDrawError)
async def livedraw_error_handler(request: Request, exc: LiveDrawError) -> JSONResponse:
    """Centralized handler for livedraw exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_type,
            "message": exc.message,
            "request_id": request_id,
        },
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After header on rate limit."""
    request_id = getattr(request.state, "request_id", "unknown")
    _audit_logger.warning(
        "Rate limit exceeded: %s %s from %s",
        request.method,
        request.url.path,
        get_remote_address(request),
        extra={"event_category": "audit", "action": "rate_limit_exceeded"},
    )
    response = JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": str(exc.detail),
            "request_id": request_id,
        },
    )
    response.headers["Retry-After"] = "60"
    return response


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip compression for responses > 500 bytes (event streams are left alone)
app.add_middleware(GZipMiddleware, minimum_size=500)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def security_headers_middleware(request: Request, call_next) -> Response:
    response: Response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    return response


# ---------------------------------------------------------------------------
# Request logging middleware (also sets request_id on state for error handler)
# ---------------------------------------------------------------------------
@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    request_id = str(uuid4())[:8]
    request.state.request_id = request_id
    start = time.monotonic()
    response: Response = await call_next(request)
    elapsed_ms = round((time.monotonic() - start) * 1000, 1)
    logger.info(
        "%s %s %s %.1fms [%s]",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------
_instrumentator = Instrumentator(
    excluded_handlers=["/metrics", "/api/burma2d/stream", "/api/burma2d/chat/stream"],
    should_respect_env_var=False,
)
_instrumentator.instrument(app).expose(app, endpoint="/metrics", tags=["Metrics"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"], summary="Health check")
async def health(request: Request):
    ctx: AppContext = request.app.state.context
    uptime_s = time.monotonic() - _STARTUP_TIME if _STARTUP_TIME > 0 else 0
    return {
        "status": "ok",
        "version": livedraw.__version__,
        "uptime_seconds": round(uptime_s, 1),
        "result_viewers": ctx.results.count(),
        "chat_connections": ctx.chat.online_count(),
        "auth_mode": ctx.settings.auth_mode,
        "chat_auth_ready": ctx.verifier is not None,
    }


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(results.router)
app.include_router(chat.router)
app.include_router(chat.admin_router)
app.include_router(chat_ws.router)
