"""OAuth 2.0 error types and their wire shapes."""

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


def append_query(uri: str, params: dict) -> str:
    """Add params to a URI, keeping any query string it already has."""
    parsed = urlparse(uri)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v is not None)
    return urlunparse(parsed._replace(query=urlencode(query)))


class OAuthError(Exception):
    """Base OAuth error.

    `error` is the RFC 6749 error code sent to clients. When `redirect_uri`
    is set the error is delivered by redirecting back to the client instead
    of as a JSON body.
    """

    error = "server_error"
    status_code = 400
    default_description = "The server encountered an unexpected condition"

    def __init__(
        self,
        description: str = None,
        state: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.description = description or self.default_description
        self.state = state
        self.redirect_uri = redirect_uri
        super().__init__(self.description)

    def to_dict(self) -> dict:
        body = {"error": self.error, "error_description": self.description}
        if self.state:
            body["state"] = self.state
        return body

    def redirect_url(self) -> str:
        return append_query(self.redirect_uri, {
            "error": self.error,
            "error_description": self.description,
            "state": self.state or None,
        })


class InvalidRequest(OAuthError):
    error = "invalid_request"
    default_description = "The request is missing a required parameter or is otherwise malformed"


class InvalidClient(OAuthError):
    error = "invalid_client"
    default_description = "Client authentication failed"


class UnauthorizedClient(OAuthError):
    error = "unauthorized_client"
    default_description = "The client is not authorized to request an authorization code"


class InvalidGrant(OAuthError):
    error = "invalid_grant"
    default_description = "The provided authorization grant is invalid, expired or revoked"


class InvalidScope(OAuthError):
    error = "invalid_scope"
    default_description = "The requested scope is invalid or unknown"


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"
    default_description = "The authorization grant type is not supported"


class UnsupportedResponseType(OAuthError):
    error = "unsupported_response_type"
    default_description = "The response type is not supported"


class UnauthorizedToken(OAuthError):
    error = "invalid_token"
    default_description = "Invalid or expired token"


class UserNotFound(OAuthError):
    error = "user_not_found"
    status_code = 404
    default_description = "User not found"


class UpstreamUnavailable(OAuthError):
    error = "temporarily_unavailable"
    status_code = 503
    default_description = "Account service is unavailable"
