"""OAuth 2.0 / OpenID Connect endpoints for the support portal.

This module contains:
- Authorization endpoint (/oauth/authorize)
- Token endpoint (/oauth/token)
- UserInfo endpoint (/oauth/userinfo)
- Discovery metadata (/.well-known/openid-configuration)

The server core and claims projector live on app.state; see main.create_app().
"""

import base64
import binascii
import logging
from urllib.parse import unquote_plus

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from support_oauth.errors import InvalidClient, OAuthError, UnauthorizedToken
from support_oauth.handlers import ALLOWED_SCOPES, extract_bearer_token

logger = logging.getLogger(__name__)

# Router for OAuth endpoints, mounted under the configured route prefix
router = APIRouter(prefix="/oauth", tags=["oauth"])

# Discovery lives at the server root
discovery_router = APIRouter(tags=["discovery"])

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


async def oauth_error_handler(request: Request, exc: OAuthError):
    """Translate OAuth errors into redirects or JSON error bodies."""
    if exc.redirect_uri:
        return RedirectResponse(url=exc.redirect_url(), status_code=302)

    headers = dict(NO_STORE_HEADERS)
    if isinstance(exc, UnauthorizedToken):
        headers["WWW-Authenticate"] = f'Bearer error="{exc.error}"'
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def client_credentials(request: Request, form) -> tuple:
    """Client id and secret from HTTP Basic auth, falling back to the form body."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("basic "):
        try:
            decoded = base64.b64decode(auth_header[6:].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            raise InvalidClient("Malformed Basic authorization header")
        client_id, sep, client_secret = decoded.partition(":")
        if not sep:
            raise InvalidClient("Malformed Basic authorization header")
        return unquote_plus(client_id), unquote_plus(client_secret)

    return form.get("client_id"), form.get("client_secret")


# ============== Authorization Endpoint ==============

@router.get("/authorize")
async def authorize(
    request: Request,
    response_type: str = "",
    client_id: str = "",
    redirect_uri: str = "",
    scope: str = "",
    state: str = "",
):
    """OAuth 2.0 Authorization Endpoint - issues a code to the logged-in user."""
    server = request.app.state.oauth_server

    user_id = server.user_resolver.resolve(request)
    if user_id is None:
        logger.warning("[AUTHORIZE] No authenticated user on request")
        return JSONResponse(
            {"error": "unauthorized", "error_description": "Login required"},
            status_code=401,
        )

    location = server.authorize(
        user_id=user_id,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        response_type=response_type,
    )
    return RedirectResponse(url=location, status_code=302)


# ============== Token Endpoint ==============

@router.post("/token")
async def token(request: Request):
    """OAuth 2.0 Token Endpoint."""
    server = request.app.state.oauth_server
    form = await request.form()

    grant_type = form.get("grant_type")
    client_id, client_secret = client_credentials(request, form)
    logger.debug(f"[TOKEN] grant_type: {grant_type}, client_id: {client_id}")

    issued = server.exchange(
        grant_type=grant_type,
        client_id=client_id,
        client_secret=client_secret,
        code=form.get("code"),
        redirect_uri=form.get("redirect_uri"),
        refresh_token=form.get("refresh_token"),
        scope=form.get("scope"),
    )
    return JSONResponse(server.token_response(issued), headers=NO_STORE_HEADERS)


# ============== UserInfo Endpoint ==============

@router.api_route("/userinfo", methods=["GET", "POST"])
async def userinfo(request: Request):
    """OpenID Connect UserInfo Endpoint."""
    server = request.app.state.oauth_server
    projector = request.app.state.claims_projector

    form = None
    if request.method == "POST":
        form = await request.form()

    grant = server.validate_bearer(extract_bearer_token(request, form))
    claims = await projector.project(grant.user_id, grant.scope)
    return JSONResponse(claims)


# ============== Discovery ==============

@discovery_router.get("/.well-known/openid-configuration")
async def openid_configuration(request: Request):
    """OpenID Provider metadata for the support portal client."""
    issuer = str(request.base_url).rstrip("/")
    oauth_base = f"{issuer}{request.app.state.route_prefix}/oauth"
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{oauth_base}/authorize",
        "token_endpoint": f"{oauth_base}/token",
        "userinfo_endpoint": f"{oauth_base}/userinfo",
        "scopes_supported": list(ALLOWED_SCOPES),
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "subject_types_supported": ["public"],
        "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post"],
        "claims_supported": [
            "sub", "name", "given_name", "family_name",
            "preferred_username", "picture", "email", "email_verified",
        ],
    }
