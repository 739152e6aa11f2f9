"""Portal login middleware for the authorization endpoint.

Resolves the logged-in portal user from the portal's login JWT and stores
the user id on request.state.user_id. Requests to protected paths without
a valid login are rejected before reaching the endpoint.
"""

import logging
from typing import Iterable, Optional

import jwt
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
LOGIN_AUDIENCE = "login"
AUTH_COOKIE_NAME = "auth_token"


def verify_login_token(token: str, secret: str) -> Optional[str]:
    """Verify a portal login JWT and return its subject, or None."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=LOGIN_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("[AUTH] Login token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[AUTH] Invalid login token: {e}")
        return None

    subject = str(payload.get("sub", ""))
    if not subject.isascii() or not subject.isdigit():
        logger.debug("[AUTH] Login token subject is not a user id")
        return None
    return subject


class PortalAuthMiddleware(BaseHTTPMiddleware):
    """Require a portal login on the given paths."""

    def __init__(self, app, secret: str, protected_paths: Iterable[str] = ()):
        super().__init__(app)
        self.secret = secret
        self.protected_paths = tuple(protected_paths)

    def _login_token(self, request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.lower().startswith("bearer "):
            return auth_header[7:].strip() or None
        return request.cookies.get(AUTH_COOKIE_NAME)

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or request.url.path not in self.protected_paths:
            return await call_next(request)

        token = self._login_token(request)
        if not token:
            logger.info("[AUTH] Request rejected: not logged in")
            return JSONResponse(
                {"error": "unauthorized", "error_description": "Login required"},
                status_code=401,
            )

        user_id = verify_login_token(token, self.secret)
        if user_id is None:
            logger.info("[AUTH] Request rejected: invalid or expired login token")
            return JSONResponse(
                {"error": "unauthorized", "error_description": "Invalid or expired login"},
                status_code=401,
            )

        request.state.user_id = user_id
        return await call_next(request)
