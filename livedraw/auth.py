"""Request authentication for livedraw.

Two kinds of credential are in play:

- Producer and admin routes take an API key from ``LD_API_KEYS``
  (comma-separated).  When the variable is empty, auth is **disabled**
  (dev mode).  Keys are sent as ``Authorization: Bearer <key>``, the
  ``X-API-Key`` header, or the ``api_key`` query parameter.
- Chat connections carry an identity token (Google ID token by default)
  as ``Authorization: Bearer <token>`` or the ``idtoken`` query parameter,
  which is how mobile WebSocket clients send it.
"""

from __future__ import annotations

import logging
import os

from fastapi import HTTPException, Request, status
from starlette.requests import HTTPConnection

from livedraw.auth_providers.base import AuthResult
from livedraw.auth_providers.factory import create_provider
from livedraw.config import settings

_audit_logger = logging.getLogger("livedraw.audit")


def _bearer(connection: HTTPConnection) -> str | None:
    auth_header = connection.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def _extract_token(request: Request) -> str | None:
    """Extract an API key from request headers or query params.

    Priority: Authorization Bearer > X-API-Key header > api_key query param.
    """
    token = _bearer(request)
    if token is not None:
        return token

    api_key = request.headers.get("X-API-Key")
    if api_key is not None:
        return api_key

    return request.query_params.get("api_key")


def extract_identity_token(connection: HTTPConnection) -> str | None:
    """Extract a chat identity token: Authorization Bearer > ``idtoken`` > ``token`` query."""
    token = _bearer(connection)
    if token:
        return token
    return connection.query_params.get("idtoken") or connection.query_params.get("token")


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def require_api_key(request: Request) -> None:
    """FastAPI dependency guarding producer and admin routes.

    The :class:`AuthResult` is attached to ``request.state.auth``.

    Raises:
        HTTPException 403: auth is enabled but no key was provided.
        HTTPException 401: a key was provided but it is not valid.
    """
    # Read config from os.environ so monkeypatch works in tests.
    api_keys_raw = os.environ.get("LD_API_KEYS", settings.api_keys)
    valid_keys = frozenset(k.strip() for k in api_keys_raw.split(",") if k.strip())

    if not valid_keys:
        request.state.auth = AuthResult(
            authenticated=True, identity="dev", provider="dev", roles=["admin"]
        )
        return

    token = _extract_token(request)
    if token is None:
        _audit_logger.warning(
            "Auth failure (no key): %s %s from %s",
            request.method,
            request.url.path,
            _client_host(request),
            extra={
                "event_category": "audit",
                "action": "auth_failure",
                "reason": "no_token",
                "path": request.url.path,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide via X-API-Key header or api_key query parameter.",
        )

    result = await create_provider("api_key", api_keys=valid_keys).authenticate(token)
    if not result.authenticated:
        _audit_logger.warning(
            "Auth failure (invalid key): %s %s from %s",
            request.method,
            request.url.path,
            _client_host(request),
            extra={
                "event_category": "audit",
                "action": "auth_failure",
                "reason": "invalid_token",
                "path": request.url.path,
                "provider": result.provider,
                "error": result.error,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    request.state.auth = result
