"""Pluggable hooks used by the authorization server.

The server asks a UserResolver who the logged-in user is and a
ScopeValidator whether a client may request a scope set. Both are injected
at construction so tests and other deployments can substitute their own.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from fastapi import Request

ALLOWED_SCOPES = ("openid", "profile", "email")


def parse_scope(scope: Optional[str]) -> tuple:
    """Split a space-delimited scope string, dropping duplicates but keeping order."""
    seen = []
    for item in (scope or "").split():
        if item not in seen:
            seen.append(item)
    return tuple(seen)


class ScopeValidator(ABC):
    @abstractmethod
    def validate(self, client_id: str, scopes: Iterable[str]) -> bool:
        """Return True if the client may be granted every scope in scopes."""


class AllowedScopeValidator(ScopeValidator):
    """Accepts only scopes from a fixed vocabulary."""

    def __init__(self, allowed: Iterable[str] = ALLOWED_SCOPES):
        self.allowed = frozenset(allowed)

    def validate(self, client_id: str, scopes: Iterable[str]) -> bool:
        return all(s in self.allowed for s in scopes)


class UserResolver(ABC):
    @abstractmethod
    def resolve(self, request: Request) -> Optional[str]:
        """Return the authenticated user id for the request, or None."""


class RequestStateUserResolver(UserResolver):
    """Reads the user id the auth middleware stored on request.state."""

    def resolve(self, request: Request) -> Optional[str]:
        user_id = getattr(request.state, "user_id", None)
        return str(user_id) if user_id is not None else None


def extract_bearer_token(request: Request, form: dict = None) -> Optional[str]:
    """Get a bearer token from the Authorization header or access_token parameter."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer":
            return None
        return token.strip() or None

    token = request.query_params.get("access_token")
    if not token and form:
        token = form.get("access_token")
    return token or None
