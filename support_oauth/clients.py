"""Registry of the OAuth clients this server trusts.

The support portal is the only client. It is registered once at startup from
configuration and never changes while the process runs.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from support_oauth.errors import InvalidClient

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Client:
    id: str
    secret: str
    redirect_domain: str

    def __repr__(self) -> str:
        return f"Client(id={self.id!r}, redirect_domain={self.redirect_domain!r})"

    def allows_redirect(self, redirect_uri: str) -> bool:
        """Check that redirect_uri is on the registered domain or a subdomain of it."""
        try:
            parsed = urlparse(redirect_uri)
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False

        registered = urlparse("//" + self.redirect_domain.lower())
        try:
            port = parsed.port or DEFAULT_PORTS[parsed.scheme]
            registered_port = registered.port
        except ValueError:
            return False
        # No registered port means the scheme's default port
        if port != (registered_port or DEFAULT_PORTS[parsed.scheme]):
            return False

        host, domain = parsed.hostname, registered.hostname
        if not domain:
            return False
        return host == domain or host.endswith("." + domain)


class ClientRegistry:
    """Lookup and authentication of registered clients."""

    def __init__(self, clients: list[Client] = None):
        self._clients = {c.id: c for c in clients or []}

    @classmethod
    def from_config(cls, config) -> "ClientRegistry":
        client = Client(
            id=config.client_id,
            secret=config.client_secret,
            redirect_domain=config.redirect_domain,
        )
        logger.info(f"[STARTUP] Registered OAuth client {client.id} for domain {client.redirect_domain}")
        return cls([client])

    def lookup(self, client_id: str) -> Optional[Client]:
        if not client_id:
            return None
        return self._clients.get(client_id)

    def authenticate(self, client_id: str, client_secret: str) -> Client:
        """Return the client if the secret matches, else raise InvalidClient.

        Unknown ids and wrong secrets fail the same way.
        """
        client = self.lookup(client_id)
        expected = client.secret if client else ""
        provided = client_secret or ""
        matches = hmac.compare_digest(expected.encode(), provided.encode())
        if client is None or not provided or not matches:
            logger.info(f"[TOKEN] Client authentication failed for client_id: {client_id}")
            raise InvalidClient()
        return client
