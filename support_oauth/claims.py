"""OpenID Connect userinfo claims, filtered by granted scope."""

import asyncio
import logging
import re

from support_oauth.accounts import AccountService, AccountServiceError
from support_oauth.errors import InvalidRequest, UpstreamUnavailable, UserNotFound

logger = logging.getLogger(__name__)


class ClaimsProjector:
    """Builds the userinfo document for a user and scope set.

    Claims not licensed by the scope are left out entirely:
    - openid: sub
    - profile: name, given_name, family_name, preferred_username, picture
    - email: email, email_verified
    """

    def __init__(self, accounts: AccountService, timeout: float = 5.0):
        self.accounts = accounts
        self.timeout = timeout

    async def project(self, user_id: str, scope) -> dict:
        if not re.fullmatch(r"[0-9]+", user_id or ""):
            raise InvalidRequest("Token subject is not a valid user id")

        try:
            exists, account = await asyncio.wait_for(
                self.accounts.account_exists(int(user_id)), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"[USERINFO] Account lookup timed out for user {user_id}")
            raise UpstreamUnavailable()
        except AccountServiceError as e:
            logger.warning(f"[USERINFO] Account lookup failed for user {user_id}: {e}")
            raise UpstreamUnavailable()

        if not exists or account is None:
            logger.info(f"[USERINFO] Account {user_id} no longer exists")
            raise UserNotFound()

        scopes = set(scope)
        claims = {"sub": user_id}

        if "profile" in scopes:
            claims["name"] = f"{account.first_name} {account.last_name}".strip()
            claims["given_name"] = account.first_name
            claims["family_name"] = account.last_name
            if account.username:
                claims["preferred_username"] = account.username
            if account.avatar:
                claims["picture"] = account.avatar

        if "email" in scopes:
            claims["email"] = account.email
            claims["email_verified"] = account.verified

        return claims
