"""JWT-based identity providers for chat connections (Google, shared secret, permissive)."""

from __future__ import annotations

import asyncio
import logging

import jwt

from livedraw.auth_providers.base import AuthResult, subject_of

logger = logging.getLogger("livedraw.auth_providers.jwt")

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


class GoogleIDTokenProvider:
    """Verify Google Sign-In ID tokens against Google's published keys.

    Uses ``jwt.PyJWKClient`` to fetch and cache the JWKS.  RS256 signatures,
    expiry, audience (the OAuth client id) and issuer are all checked.
    """

    name = "google"

    def __init__(self, client_id: str, jwks_url: str = GOOGLE_JWKS_URL) -> None:
        self._client_id = client_id
        self._jwks_url = jwks_url
        self._jwks_client: jwt.PyJWKClient | None = None

    def _get_jwks_client(self) -> jwt.PyJWKClient:
        """Lazily create and cache the JWKS client (1-hour TTL)."""
        if self._jwks_client is None:
            self._jwks_client = jwt.PyJWKClient(self._jwks_url, cache_jwk_set=True, lifespan=3600)
        return self._jwks_client

    async def authenticate(self, token: str) -> AuthResult:
        jwks_client = self._get_jwks_client()
        try:
            # Key fetch is blocking HTTP; keep it off the event loop.
            signing_key = await asyncio.to_thread(jwks_client.get_signing_key_from_jwt, token)
        except Exception as e:
            logger.warning("JWKS fetch/lookup failed: %s", e)
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"JWKS verification failed: {e}",
            )

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._client_id,
                options={"require": ["sub", "iss", "exp", "aud"]},
            )
        except Exception as e:
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"Google ID token validation failed: {e}",
            )

        if payload.get("iss") not in GOOGLE_ISSUERS:
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"Google ID token validation failed: unexpected issuer {payload.get('iss')!r}",
            )
        return AuthResult(
            authenticated=True,
            identity=subject_of(payload),
            provider=self.name,
            roles=["chat"],
            claims=payload,
        )


class SharedSecretJWTProvider:
    """Verify HS256 tokens signed with a shared secret."""

    name = "jwt"

    def __init__(self, secret: str, audience: str | None = None) -> None:
        self._secret = secret
        self._audience = audience

    async def authenticate(self, token: str) -> AuthResult:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except Exception as e:
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"JWT validation failed: {e}",
            )

        sub = subject_of(payload)
        if not sub:
            return AuthResult(
                authenticated=False, provider=self.name, error="Token carries no subject"
            )
        return AuthResult(
            authenticated=True, identity=sub, provider=self.name, roles=["chat"], claims=payload
        )


class UnverifiedClaimsProvider:
    """Read identity claims without checking signature or expiry.

    Development only; enabled by ``LD_AUTH_MODE=permissive``.
    """

    name = "permissive"

    async def authenticate(self, token: str) -> AuthResult:
        try:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
            )
        except jwt.DecodeError as e:
            return AuthResult(
                authenticated=False,
                provider=self.name,
                error=f"Failed to decode token: {e}",
            )

        sub = subject_of(payload)
        if not sub:
            return AuthResult(
                authenticated=False, provider=self.name, error="Missing user ID in token"
            )
        return AuthResult(
            authenticated=True, identity=sub, provider=self.name, roles=["chat"], claims=payload
        )
