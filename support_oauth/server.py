"""Authorization server core: code issuance, token exchange, bearer validation.

This module knows nothing about HTTP; endpoints.py adapts it to FastAPI.
"""

import logging
from typing import Optional

from support_oauth.clients import ClientRegistry
from support_oauth.errors import (
    InvalidGrant,
    InvalidRequest,
    InvalidScope,
    UnauthorizedClient,
    UnauthorizedToken,
    UnsupportedGrantType,
    UnsupportedResponseType,
    append_query,
)
from support_oauth.handlers import (
    AllowedScopeValidator,
    RequestStateUserResolver,
    ScopeValidator,
    UserResolver,
    parse_scope,
)
from support_oauth.store import GrantNotFound, GrantStore, ScopeNotGranted, Token

logger = logging.getLogger(__name__)

GRANT_TYPES = ("authorization_code", "refresh_token")


class AuthorizationServer:
    """Issues codes to logged-in users and exchanges them for tokens."""

    def __init__(
        self,
        registry: ClientRegistry,
        store: GrantStore,
        scope_validator: ScopeValidator = None,
        user_resolver: UserResolver = None,
    ):
        self.registry = registry
        self.store = store
        self.scope_validator = scope_validator or AllowedScopeValidator()
        self.user_resolver = user_resolver or RequestStateUserResolver()

    # ============== Authorization Endpoint ==============

    def authorize(
        self,
        user_id: str,
        client_id: str,
        redirect_uri: str,
        scope: str = "",
        state: str = "",
        response_type: str = "",
    ) -> str:
        """Issue an authorization code and return the URL to redirect the user to.

        Errors about the client or redirect URI are raised without a
        redirect_uri (the URI is not trusted); later errors carry it so the
        caller can send the user back with the error and state.
        """
        state = state or None

        if not client_id or not redirect_uri:
            raise InvalidRequest("client_id and redirect_uri are required", state=state)

        # Client and redirect_uri errors never redirect: sending the user to an
        # unverified URI would make this an open redirector (RFC 6749 4.1.2.1).
        client = self.registry.lookup(client_id)
        if client is None:
            logger.info(f"[AUTHORIZE] Unknown client_id: {client_id}")
            raise UnauthorizedClient("Unknown client", state=state)

        if not client.allows_redirect(redirect_uri):
            logger.info(f"[AUTHORIZE] redirect_uri not on registered domain for client {client_id}")
            raise InvalidRequest("redirect_uri does not match the registered domain", state=state)

        scopes = parse_scope(scope)
        if not self.scope_validator.validate(client_id, scopes):
            raise InvalidScope(state=state, redirect_uri=redirect_uri)

        if response_type != "code":
            raise UnsupportedResponseType(state=state, redirect_uri=redirect_uri)

        code = self.store.issue_code(client.id, user_id, scopes, redirect_uri)
        logger.info(f"[AUTHORIZE] Code issued for user {user_id}, scope: {' '.join(scopes)}")
        return append_query(redirect_uri, {"code": code.code, "state": state})

    # ============== Token Endpoint ==============

    def exchange(
        self,
        grant_type: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        code: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        refresh_token: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Token:
        """Exchange an authorization code or refresh token for a new token."""
        if not grant_type:
            raise InvalidRequest("grant_type is required")
        if grant_type not in GRANT_TYPES:
            raise UnsupportedGrantType()

        client = self.registry.authenticate(client_id, client_secret)

        if grant_type == "authorization_code":
            if not code or not redirect_uri:
                raise InvalidRequest("code and redirect_uri are required")
            try:
                grant = self.store.consume_code(code)
            except GrantNotFound:
                logger.info(f"[TOKEN] Invalid authorization code from client {client.id}")
                raise InvalidGrant()
            if grant.client_id != client.id or grant.redirect_uri != redirect_uri:
                logger.info("[TOKEN] Code presented with mismatched client or redirect_uri")
                raise InvalidGrant()
            token = self.store.issue_token(client.id, grant.user_id, grant.scope)
            logger.info(f"[TOKEN] Access token created for user {grant.user_id}")
            return token

        if not refresh_token:
            raise InvalidRequest("refresh_token is required")
        requested = parse_scope(scope) if scope else None
        try:
            token = self.store.refresh_token(refresh_token, client_id=client.id, scope=requested)
        except GrantNotFound:
            logger.info(f"[TOKEN] Invalid refresh token from client {client.id}")
            raise InvalidGrant()
        except ScopeNotGranted:
            raise InvalidScope("Requested scope exceeds the original grant")
        logger.info(f"[TOKEN] Token refreshed for user {token.user_id}")
        return token

    def token_response(self, token: Token) -> dict:
        body = {
            "access_token": token.access_token,
            "token_type": "bearer",
            "expires_in": token.expires_in(self.store.clock()),
            "scope": token.scope_string,
        }
        if token.refresh_token:
            body["refresh_token"] = token.refresh_token
        return body

    # ============== Bearer Validation ==============

    def validate_bearer(self, access_token: Optional[str]) -> Token:
        """Resolve a presented access token; every failure looks the same."""
        if not access_token:
            raise UnauthorizedToken()
        try:
            return self.store.lookup_token(access_token)
        except GrantNotFound:
            raise UnauthorizedToken()
