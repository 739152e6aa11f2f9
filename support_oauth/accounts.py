"""Account lookup against the portal's account service.

Two backends:
- HttpAccountService calls the portal account API over HTTP (httpx)
- SupabaseAccountService reads the accounts table directly
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from supabase import create_client

logger = logging.getLogger(__name__)


class AccountServiceError(Exception):
    """The account service could not answer (transport or protocol failure)."""


@dataclass
class AccountRecord:
    id: int
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    verified: bool = False
    username: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "AccountRecord":
        try:
            return cls(
                id=int(data["id"]),
                first_name=data.get("first_name") or "",
                last_name=data.get("last_name") or "",
                email=data.get("email") or "",
                verified=bool(data.get("verified", False)),
                username=data.get("username") or None,
                avatar=data.get("avatar") or None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise AccountServiceError(f"malformed account record: {e}") from e


class AccountService(ABC):
    @abstractmethod
    async def account_exists(self, user_id: int) -> tuple[bool, Optional[AccountRecord]]:
        """Return (True, record) for an existing account, (False, None) otherwise.

        Raises AccountServiceError if the lookup itself failed.
        """

    async def close(self) -> None:
        pass


class HttpAccountService(AccountService):
    """Looks accounts up via GET {base_url}/api/accounts/{id}."""

    def __init__(
        self,
        base_url: str,
        token: str = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def account_exists(self, user_id: int) -> tuple[bool, Optional[AccountRecord]]:
        try:
            response = await self._client.get(f"/api/accounts/{user_id}")
        except httpx.HTTPError as e:
            logger.warning(f"[ACCOUNTS] Error looking up account {user_id}: {e}")
            raise AccountServiceError(str(e)) from e

        if response.status_code == 404:
            return False, None
        if response.status_code != 200:
            logger.warning(f"[ACCOUNTS] Account service returned {response.status_code} for {user_id}")
            raise AccountServiceError(f"unexpected status {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise AccountServiceError("account service returned invalid JSON") from e
        return True, AccountRecord.from_dict(data)

    async def close(self) -> None:
        await self._client.aclose()


class SupabaseAccountService(AccountService):
    """Reads accounts from a Supabase table.

    The supabase client is synchronous, so queries run on a worker thread.
    """

    COLUMNS = "id, first_name, last_name, email, verified, username, avatar"

    def __init__(self, client, table: str = "accounts"):
        self.client = client
        self.table = table

    def _query(self, user_id: int) -> list:
        response = (
            self.client.table(self.table)
            .select(self.COLUMNS)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return response.data or []

    async def account_exists(self, user_id: int) -> tuple[bool, Optional[AccountRecord]]:
        try:
            rows = await asyncio.to_thread(self._query, user_id)
        except Exception as e:
            logger.warning(f"[ACCOUNTS] Supabase lookup failed for {user_id}: {e}")
            raise AccountServiceError(str(e)) from e

        if not rows:
            return False, None
        return True, AccountRecord.from_dict(rows[0])


def create_account_service(config, supabase_client=None) -> AccountService:
    """Build the account backend named by config.

    The HTTP service wins when both are configured.
    """
    if config.account_service_url:
        logger.info(f"[STARTUP] Account lookups via {config.account_service_url}")
        return HttpAccountService(
            config.account_service_url,
            token=config.account_service_token,
            timeout=config.account_lookup_timeout,
        )

    if supabase_client is None:
        supabase_client = create_client(config.supabase_url, config.supabase_key)
    logger.info(f"[STARTUP] Account lookups via Supabase table {config.accounts_table}")
    return SupabaseAccountService(supabase_client, table=config.accounts_table)
