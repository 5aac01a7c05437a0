"""API key authentication provider for producer and admin routes."""

from __future__ import annotations

import hmac

from livedraw.auth_providers.base import AuthResult


class ApiKeyProvider:
    """Authenticate via static API keys from LD_API_KEYS."""

    name = "api_key"

    def __init__(self, valid_keys: set[str] | frozenset[str]) -> None:
        self._valid_keys = frozenset(valid_keys)

    async def authenticate(self, token: str) -> AuthResult:
        if any(hmac.compare_digest(token.encode(), key.encode()) for key in self._valid_keys):
            return AuthResult(
                authenticated=True,
                identity=f"api_key:{token[:8]}...",
                provider=self.name,
                roles=["admin"],
            )
        return AuthResult(
            authenticated=False,
            provider=self.name,
            error="Invalid API key",
        )
