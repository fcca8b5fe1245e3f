"""Identity Service - Who is the current user.

Credential issuance and session lifecycle belong to an external identity
provider; this module only exposes the stable user id it hands us.

Interface Contract:
- current_user_id() -> str | None
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from config import IDENTITY_HEADER


class IdentityProvider(ABC):
    """Abstract base class for identity providers."""

    @abstractmethod
    def current_user_id(self) -> str | None:
        """Return the authenticated user's id, or None when signed out."""
        pass


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed at construction (CLI runs and tests)."""

    def __init__(self, user_id: str | None = None):
        self.user_id = user_id

    def current_user_id(self) -> str | None:
        return self.user_id


class HeaderIdentityProvider(IdentityProvider):
    """Reads the user id from a header set by the upstream auth proxy."""

    def __init__(self, header: str = IDENTITY_HEADER):
        self.header = header

    def current_user_id(self) -> str | None:
        from flask import has_request_context, request

        if not has_request_context():
            return None
        value = (request.headers.get(self.header) or "").strip()
        return value or None
