"""Config management for support-oauth."""
import base64
import json
import os
import re
import secrets
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse


CONFIG_DIR = Path.home() / ".support-oauth"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_ROUTE_PREFIX = "/api/account/support"

# Environment variable -> config key
ENV_KEYS = {
    "SUPPORT_CLIENT_ID": "client_id",
    "SUPPORT_CLIENT_SECRET": "client_secret",
    "SUPPORT_PORTAL_URL": "support_portal_url",
    "SUPPORT_MAILBOX_ID": "mailbox_id",
    "PORTAL_JWT_SECRET": "portal_jwt_secret",
    "ACCOUNT_SERVICE_URL": "account_service_url",
    "ACCOUNT_SERVICE_TOKEN": "account_service_token",
    "ACCOUNT_LOOKUP_TIMEOUT": "account_lookup_timeout",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_ANON_KEY": "supabase_key",
    "ACCOUNTS_TABLE": "accounts_table",
    "ROUTE_PREFIX": "route_prefix",
    "CORS_ORIGINS": "cors_origins",
    "CODE_TTL": "code_ttl",
    "ACCESS_TOKEN_TTL": "access_token_ttl",
    "REFRESH_TOKEN_TTL": "refresh_token_ttl",
    "SERVICE_NAME": "service_name",
    "LOG_TO_SUPABASE": "log_to_supabase",
}


class ConfigError(Exception):
    """Configuration is missing or malformed; the server must not start."""


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def client_id(self) -> Optional[str]:
        return self.data.get("client_id")

    @property
    def client_secret(self) -> Optional[str]:
        return self.data.get("client_secret")

    @property
    def support_portal_url(self) -> Optional[str]:
        return self.data.get("support_portal_url")

    @property
    def mailbox_id(self) -> Optional[str]:
        value = self.data.get("mailbox_id")
        return str(value) if value is not None else None

    @property
    def portal_jwt_secret(self) -> Optional[str]:
        return self.data.get("portal_jwt_secret")

    @property
    def account_service_url(self) -> Optional[str]:
        return self.data.get("account_service_url")

    @property
    def account_service_token(self) -> Optional[str]:
        return self.data.get("account_service_token")

    @property
    def account_lookup_timeout(self) -> float:
        return float(self.data.get("account_lookup_timeout", 5.0))

    @property
    def supabase_url(self) -> Optional[str]:
        return self.data.get("supabase_url")

    @property
    def supabase_key(self) -> Optional[str]:
        return self.data.get("supabase_key")

    @property
    def accounts_table(self) -> str:
        return self.data.get("accounts_table") or "accounts"

    @property
    def route_prefix(self) -> str:
        prefix = self.data.get("route_prefix", DEFAULT_ROUTE_PREFIX) or ""
        return "/" + prefix.strip("/") if prefix.strip("/") else ""

    @property
    def code_ttl(self) -> int:
        return int(self.data.get("code_ttl", 10 * 60))

    @property
    def access_token_ttl(self) -> int:
        return int(self.data.get("access_token_ttl", 2 * 60 * 60))

    @property
    def refresh_token_ttl(self) -> int:
        return int(self.data.get("refresh_token_ttl", 72 * 60 * 60))

    @property
    def service_name(self) -> str:
        return self.data.get("service_name") or "support-oauth"

    @property
    def log_to_supabase(self) -> bool:
        value = self.data.get("log_to_supabase", False)
        if isinstance(value, str):
            return value.lower() in ("1", "true", "yes")
        return bool(value)

    @property
    def cors_origins(self) -> list[str]:
        origins = self.data.get("cors_origins")
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        if origins:
            return list(origins)
        portal = urlparse(self.support_portal_url or "")
        if portal.scheme and portal.netloc:
            return [f"{portal.scheme}://{portal.netloc}"]
        return []

    @property
    def redirect_domain(self) -> str:
        """Host (and port, if any) redirect URIs must belong to."""
        parsed = urlparse(self.support_portal_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"support_portal_url is not a valid URL: {self.support_portal_url!r}")
        return parsed.netloc.lower()

    def has_account_backend(self) -> bool:
        return bool(self.account_service_url or (self.supabase_url and self.supabase_key))

    def validate(self) -> None:
        """Raise ConfigError unless every required setting is present and well-formed."""
        if not self.client_id:
            raise ConfigError("client_id is required")

        if not self.client_secret:
            raise ConfigError("client_secret is required")

        if not self.support_portal_url:
            raise ConfigError("support_portal_url is required")

        if not self.mailbox_id:
            raise ConfigError("mailbox_id is required")

        if not re.fullmatch(r"[0-9]+", self.mailbox_id) or int(self.mailbox_id) >= 2 ** 64:
            raise ConfigError("mailbox_id must be a valid number")

        # Raises on a malformed URL
        self.redirect_domain

        if not self.portal_jwt_secret:
            raise ConfigError("portal_jwt_secret is required")

        if not self.has_account_backend():
            raise ConfigError("account_service_url or supabase_url/supabase_key is required")

        try:
            numbers = {
                "account_lookup_timeout": self.account_lookup_timeout,
                "code_ttl": self.code_ttl,
                "access_token_ttl": self.access_token_ttl,
                "refresh_token_ttl": self.refresh_token_ttl,
            }
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e
        for name, value in numbers.items():
            if value <= 0:
                raise ConfigError(f"{name} must be positive")

    def portal_meta(self) -> dict:
        """Plugin metadata advertised to the portal frontend."""
        return {
            "features": {"support": True},
            "plugins": {
                "support": {
                    "support_portal": self.support_portal_url,
                    "mailbox_id": self.mailbox_id,
                }
            },
        }


def generate_defaults() -> dict:
    """Fresh client credentials: a UUID client id and a 256-bit secret."""
    return {
        "client_id": str(uuid.uuid4()),
        "client_secret": base64.urlsafe_b64encode(secrets.token_bytes(32)).decode(),
    }


def load_config(path: Path = None, environ: dict = None) -> Config:
    """Load config from file, then apply environment overrides."""
    path = Path(path or os.getenv("SUPPORT_OAUTH_CONFIG") or CONFIG_FILE)
    environ = os.environ if environ is None else environ

    data = {}
    if path.exists():
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"could not read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")

    for env_name, key in ENV_KEYS.items():
        value = environ.get(env_name)
        if value:
            data[key] = value

    return Config(data)


def ensure_client_credentials(config: Config, path: Path = None) -> bool:
    """Generate and persist client credentials on first run.

    Returns True if new credentials were written.
    """
    if config.client_id and config.client_secret:
        return False

    defaults = generate_defaults()
    generated = {}
    for key, value in defaults.items():
        if not config.data.get(key):
            config.data[key] = value
            generated[key] = value

    save_config(generated, path)
    return True


def save_config(values: dict, path: Path = None) -> None:
    """Merge values into the config file."""
    path = Path(path or os.getenv("SUPPORT_OAUTH_CONFIG") or CONFIG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {}
    if path.exists():
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigError(f"could not read {path}: {e}") from e
    data.update(values)

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

    # Set restrictive permissions (owner read/write only)
    os.chmod(path, 0o600)
