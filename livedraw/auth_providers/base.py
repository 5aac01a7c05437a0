"""Base authentication provider protocol and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from livedraw.core.models import Identity


@dataclass
class AuthResult:
    """Result of an authentication attempt."""

    authenticated: bool
    identity: str = ""
    provider: str = ""
    roles: list[str] = field(default_factory=list)
    claims: dict = field(default_factory=dict)
    error: str | None = None

    def to_identity(self) -> Identity:
        """Build the chat identity from the verified claims.

        Display name falls back to the e-mail address when the token
        carries no ``name`` claim.
        """
        email = str(self.claims.get("email") or "")
        name = str(self.claims.get("name") or "") or email
        return Identity(
            user_id=self.identity,
            username=name,
            photo_url=str(self.claims.get("picture") or ""),
            email=email,
        )


def subject_of(claims: dict) -> str:
    """User id for a claim set: ``sub``, else ``email``."""
    return str(claims.get("sub") or claims.get("email") or "")


@runtime_checkable
class AuthProvider(Protocol):
    """Protocol that all auth providers must implement."""

    name: str

    async def authenticate(self, token: str) -> AuthResult:
        """Authenticate a token/key and return an AuthResult."""
        ...
