"""Factory for creating auth providers based on configuration."""

from __future__ import annotations

import logging

from livedraw.auth_providers.api_key import ApiKeyProvider
from livedraw.auth_providers.base import AuthProvider
from livedraw.auth_providers.jwt_provider import (
    GoogleIDTokenProvider,
    SharedSecretJWTProvider,
    UnverifiedClaimsProvider,
)

logger = logging.getLogger("livedraw.auth_providers.factory")


def create_provider(
    provider_name: str,
    *,
    api_keys: set[str] | frozenset[str] | None = None,
    google_client_id: str | None = None,
    jwt_secret: str | None = None,
    jwt_audience: str | None = None,
) -> AuthProvider:
    """Create an auth provider by name."""
    if provider_name == "api_key":
        return ApiKeyProvider(api_keys or set())

    if provider_name == "google":
        if not google_client_id:
            msg = "google_client_id required for google auth provider"
            raise ValueError(msg)
        return GoogleIDTokenProvider(google_client_id)

    if provider_name == "jwt":
        if not jwt_secret:
            msg = "jwt_secret required for jwt auth provider"
            raise ValueError(msg)
        return SharedSecretJWTProvider(jwt_secret, jwt_audience)

    if provider_name == "permissive":
        logger.warning("Chat identity tokens will NOT be verified (permissive mode)")
        return UnverifiedClaimsProvider()

    msg = f"Unknown auth provider: {provider_name}"
    raise ValueError(msg)
