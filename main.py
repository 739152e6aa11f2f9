"""Support portal OAuth server.

Issues OAuth 2.0 authorization codes and bearer tokens to the support portal
(the single registered client) for users already logged in to the account
portal, and serves OpenID Connect userinfo for those tokens.

It handles:
- Authorization, token and userinfo endpoints (support_oauth/endpoints.py)
- Portal login verification for the authorize route (support_oauth/middleware.py)
- Account lookups for userinfo (support_oauth/accounts.py)

Run with `support-oauth serve` or `python main.py`.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import Config, ensure_client_credentials, load_config
from logging_config import flush_logs, setup_logging
from support_oauth.accounts import AccountService, create_account_service
from support_oauth.claims import ClaimsProjector
from support_oauth.clients import ClientRegistry
from support_oauth.endpoints import discovery_router, oauth_error_handler, router as oauth_router
from support_oauth.errors import OAuthError
from support_oauth.middleware import PortalAuthMiddleware
from support_oauth.server import AuthorizationServer
from support_oauth.store import GrantStore

VERSION = "0.3.0"

logger = logging.getLogger(__name__)


def load_environment() -> None:
    """Load .env from the working directory, if present."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)


def create_app(
    config: Config = None,
    account_service: AccountService = None,
    store: GrantStore = None,
) -> FastAPI:
    """Build the ASGI app.

    Configuration is validated first; a ConfigError propagates before any
    route is mounted, so a misconfigured server never accepts traffic.

    Without an explicit config (e.g. `uvicorn main:create_app --factory`)
    the config is loaded from disk and logging is set up here as well;
    callers passing a config own their logging setup.
    """
    configure_logging = config is None
    if config is None:
        load_environment()
        config = load_config()
        ensure_client_credentials(config)
    config.validate()

    if configure_logging:
        setup_logging(
            service_name=config.service_name,
            secrets=[config.client_secret, config.portal_jwt_secret, config.account_service_token],
        )

    registry = ClientRegistry.from_config(config)
    store = store or GrantStore(
        code_ttl=config.code_ttl,
        access_ttl=config.access_token_ttl,
        refresh_ttl=config.refresh_token_ttl,
    )
    accounts = account_service or create_account_service(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"[STARTUP] Support OAuth server ready, routes under {config.route_prefix}/oauth")
        yield
        await accounts.close()
        logger.info("[SHUTDOWN] Support OAuth server stopped")
        flush_logs()

    app = FastAPI(
        title="Support OAuth Server",
        description="OAuth 2.0 / OpenID Connect provider for the support portal",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.route_prefix = config.route_prefix
    app.state.oauth_server = AuthorizationServer(registry, store)
    app.state.claims_projector = ClaimsProjector(accounts, timeout=config.account_lookup_timeout)

    authorize_path = f"{config.route_prefix}/oauth/authorize"
    app.add_middleware(
        PortalAuthMiddleware,
        secret=config.portal_jwt_secret,
        protected_paths=[authorize_path],
    )

    # CORS for the support portal frontend (added last so it runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.include_router(oauth_router, prefix=config.route_prefix)
    app.include_router(discovery_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": config.service_name}

    @app.get("/")
    async def root():
        """Root endpoint with server info and portal plugin metadata."""
        oauth_base = f"{config.route_prefix}/oauth"
        return {
            "name": "Support OAuth Server",
            "version": VERSION,
            "endpoints": {
                "authorize": f"{oauth_base}/authorize",
                "token": f"{oauth_base}/token",
                "userinfo": f"{oauth_base}/userinfo",
                "discovery": "/.well-known/openid-configuration",
            },
            "meta": config.portal_meta(),
        }

    return app


# ============== Main Entry Point ==============

if __name__ == "__main__":
    from cli import cmd_serve
    cmd_serve()
