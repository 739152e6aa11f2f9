"""In-memory store for authorization codes and issued tokens.

Shared between all requests, so every read-modify-write runs under one lock.
Nothing survives a restart; clients recover by running a fresh
authorization flow.
"""

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

CODE_EXPIRE_SECONDS = 10 * 60  # 10 minutes
ACCESS_TOKEN_EXPIRE_SECONDS = 2 * 60 * 60  # 2 hours
REFRESH_TOKEN_EXPIRE_SECONDS = 72 * 60 * 60  # 3 days


class GrantNotFound(Exception):
    """The code or token is unknown, already used, or expired."""


class ScopeNotGranted(Exception):
    """A refresh asked for scope the original grant did not include."""


@dataclass
class AuthorizationCode:
    code: str
    client_id: str
    user_id: str
    scope: tuple
    redirect_uri: str
    expires_at: float


@dataclass
class Token:
    access_token: str
    client_id: str
    user_id: str
    scope: tuple
    access_expires_at: float
    refresh_token: Optional[str] = None
    refresh_expires_at: Optional[float] = None
    created_at: float = field(default_factory=time.time)

    @property
    def scope_string(self) -> str:
        return " ".join(self.scope)

    def expires_in(self, now: float) -> int:
        return max(0, int(self.access_expires_at - now))


class GrantStore:
    """Authorization codes and access/refresh tokens with expiry."""

    def __init__(
        self,
        code_ttl: int = CODE_EXPIRE_SECONDS,
        access_ttl: int = ACCESS_TOKEN_EXPIRE_SECONDS,
        refresh_ttl: Optional[int] = REFRESH_TOKEN_EXPIRE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.code_ttl = code_ttl
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.clock = clock

        self._lock = threading.Lock()
        self._codes: dict[str, AuthorizationCode] = {}
        self._access: dict[str, Token] = {}
        self._refresh: dict[str, Token] = {}

    @staticmethod
    def _new_secret() -> str:
        return secrets.token_urlsafe(32)

    # ============== Authorization Codes ==============

    def issue_code(self, client_id: str, user_id: str, scope: tuple, redirect_uri: str) -> AuthorizationCode:
        now = self.clock()
        with self._lock:
            self._purge_expired(now)
            code = AuthorizationCode(
                code=self._new_secret(),
                client_id=client_id,
                user_id=user_id,
                scope=tuple(scope),
                redirect_uri=redirect_uri,
                expires_at=now + self.code_ttl,
            )
            self._codes[code.code] = code
        logger.debug(f"[STORE] Issued authorization code for user {user_id}")
        return code

    def consume_code(self, code: str) -> AuthorizationCode:
        """Remove and return a code; a second call for the same code fails."""
        now = self.clock()
        with self._lock:
            entry = self._codes.pop(code, None) if code else None
        if entry is None or now >= entry.expires_at:
            raise GrantNotFound("authorization code not found")
        return entry

    # ============== Tokens ==============

    def issue_token(self, client_id: str, user_id: str, scope: tuple) -> Token:
        now = self.clock()
        with self._lock:
            self._purge_expired(now)
            return self._issue_token_locked(client_id, user_id, tuple(scope), now)

    def _issue_token_locked(self, client_id: str, user_id: str, scope: tuple, now: float) -> Token:
        token = Token(
            access_token=self._new_secret(),
            client_id=client_id,
            user_id=user_id,
            scope=scope,
            access_expires_at=now + self.access_ttl,
            created_at=now,
        )
        if self.refresh_ttl:
            token.refresh_token = self._new_secret()
            token.refresh_expires_at = now + self.refresh_ttl
            self._refresh[token.refresh_token] = token
        self._access[token.access_token] = token
        logger.debug(f"[STORE] Issued token for user {user_id}")
        return token

    def lookup_token(self, access_token: str) -> Token:
        now = self.clock()
        with self._lock:
            token = self._access.get(access_token) if access_token else None
            if token is not None and now >= token.access_expires_at:
                del self._access[access_token]
                token = None
        if token is None:
            raise GrantNotFound("access token not found")
        return token

    def refresh_token(self, refresh_token: str, client_id: str = None, scope: tuple = None) -> Token:
        """Exchange a refresh token for a new token pair.

        The old refresh token and its access token stop working. The new pair
        keeps the original user and scope, or the narrower `scope` if given.
        """
        now = self.clock()
        with self._lock:
            old = self._refresh.get(refresh_token) if refresh_token else None
            if old is None:
                raise GrantNotFound("refresh token not found")
            if now >= old.refresh_expires_at:
                self._discard_locked(old)
                raise GrantNotFound("refresh token not found")
            if client_id is not None and old.client_id != client_id:
                raise GrantNotFound("refresh token not found")
            if scope is not None and not set(scope) <= set(old.scope):
                raise ScopeNotGranted(" ".join(s for s in scope if s not in old.scope))

            self._discard_locked(old)
            new_scope = tuple(scope) if scope is not None else old.scope
            return self._issue_token_locked(old.client_id, old.user_id, new_scope, now)

    # ============== Housekeeping ==============

    def _discard_locked(self, token: Token) -> None:
        self._access.pop(token.access_token, None)
        if token.refresh_token:
            self._refresh.pop(token.refresh_token, None)

    def _purge_expired(self, now: float) -> None:
        for code in [c for c, e in self._codes.items() if now >= e.expires_at]:
            del self._codes[code]
        for access in [a for a, t in self._access.items() if now >= t.access_expires_at]:
            del self._access[access]
        for refresh in [r for r, t in self._refresh.items() if now >= t.refresh_expires_at]:
            del self._refresh[refresh]

    def purge_expired(self) -> None:
        with self._lock:
            self._purge_expired(self.clock())

    def stats(self) -> dict:
        with self._lock:
            return {
                "codes": len(self._codes),
                "access_tokens": len(self._access),
                "refresh_tokens": len(self._refresh),
            }
