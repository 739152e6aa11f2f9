"""Tests for the account service backends."""

from unittest.mock import MagicMock

import httpx
import pytest

from config import Config
from support_oauth.accounts import (
    AccountRecord,
    AccountServiceError,
    HttpAccountService,
    SupabaseAccountService,
    create_account_service,
)

ACCOUNT_JSON = {
    "id": 42,
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "a@b.com",
    "verified": True,
}


def http_service(handler, token=None) -> HttpAccountService:
    return HttpAccountService(
        "https://accounts.internal/",
        token=token,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_http_existing_account():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=ACCOUNT_JSON)

    service = http_service(handler, token="svc-token")
    exists, account = await service.account_exists(42)
    await service.close()

    assert exists is True
    assert account == AccountRecord(id=42, first_name="Ada", last_name="Lovelace", email="a@b.com", verified=True)
    assert seen["url"] == "https://accounts.internal/api/accounts/42"
    assert seen["auth"] == "Bearer svc-token"


@pytest.mark.asyncio
async def test_http_missing_account():
    service = http_service(lambda request: httpx.Response(404))

    assert await service.account_exists(1) == (False, None)


@pytest.mark.asyncio
async def test_http_server_error():
    service = http_service(lambda request: httpx.Response(500))

    with pytest.raises(AccountServiceError):
        await service.account_exists(1)


@pytest.mark.asyncio
async def test_http_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = http_service(handler)

    with pytest.raises(AccountServiceError):
        await service.account_exists(1)


@pytest.mark.asyncio
async def test_http_invalid_json():
    service = http_service(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(AccountServiceError):
        await service.account_exists(1)


@pytest.mark.asyncio
async def test_http_malformed_record():
    service = http_service(lambda request: httpx.Response(200, json={"email": "x@y.z"}))

    with pytest.raises(AccountServiceError):
        await service.account_exists(1)


def supabase_client(rows):
    client = MagicMock()
    query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
    query.execute.return_value = MagicMock(data=rows)
    return client


@pytest.mark.asyncio
async def test_supabase_existing_account():
    client = supabase_client([dict(ACCOUNT_JSON, username="ada")])
    service = SupabaseAccountService(client, table="users")

    exists, account = await service.account_exists(42)

    assert exists is True
    assert account.username == "ada"
    client.table.assert_called_once_with("users")
    client.table.return_value.select.return_value.eq.assert_called_once_with("id", 42)


@pytest.mark.asyncio
async def test_supabase_missing_account():
    service = SupabaseAccountService(supabase_client([]))

    assert await service.account_exists(42) == (False, None)


@pytest.mark.asyncio
async def test_supabase_failure():
    client = MagicMock()
    client.table.side_effect = RuntimeError("network down")
    service = SupabaseAccountService(client)

    with pytest.raises(AccountServiceError):
        await service.account_exists(42)


def test_create_prefers_http(config_data):
    config_data["supabase_url"] = "https://project.supabase.co"
    config_data["supabase_key"] = "anon"

    service = create_account_service(Config(config_data))

    assert isinstance(service, HttpAccountService)


def test_create_supabase_backend(config_data):
    del config_data["account_service_url"]
    config_data["supabase_url"] = "https://project.supabase.co"
    config_data["supabase_key"] = "anon"
    client = MagicMock()

    service = create_account_service(Config(config_data), supabase_client=client)

    assert isinstance(service, SupabaseAccountService)
    assert service.client is client
    assert service.table == "accounts"
