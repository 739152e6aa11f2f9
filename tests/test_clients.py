"""Tests for the client registry."""

import pytest

from support_oauth.clients import Client, ClientRegistry
from support_oauth.errors import InvalidClient


@pytest.fixture
def registry():
    return ClientRegistry([Client(id="portal", secret="s3cret", redirect_domain="support.example.com")])


@pytest.mark.parametrize("uri,allowed", [
    ("https://support.example.com/cb", True),
    ("http://support.example.com/cb", True),
    ("https://SUPPORT.example.com/cb", True),
    ("https://help.support.example.com/cb", True),
    ("https://support.example.com:8443/cb", False),
    ("https://support.example.com:443/cb", True),
    ("http://support.example.com:80/cb", True),
    ("http://support.example.com:443/cb", False),
    ("https://support.example.com:notaport/cb", False),
    ("https://evilsupport.example.com/cb", False),
    ("https://support.example.com.evil.net/cb", False),
    ("https://attacker@evil.net/cb", False),
    ("ftp://support.example.com/cb", False),
    ("/relative/cb", False),
    ("", False),
])
def test_allows_redirect(uri, allowed):
    client = Client(id="portal", secret="x", redirect_domain="support.example.com")

    assert client.allows_redirect(uri) is allowed


def test_registered_port_must_match():
    client = Client(id="portal", secret="x", redirect_domain="localhost:3000")

    assert client.allows_redirect("http://localhost:3000/cb")
    assert not client.allows_redirect("http://localhost:4000/cb")
    assert not client.allows_redirect("http://localhost/cb")


def test_lookup(registry):
    assert registry.lookup("portal").redirect_domain == "support.example.com"
    assert registry.lookup("other") is None
    assert registry.lookup("") is None


def test_authenticate(registry):
    assert registry.authenticate("portal", "s3cret").id == "portal"


@pytest.mark.parametrize("client_id,secret", [
    ("portal", "wrong"),
    ("portal", ""),
    ("portal", None),
    ("unknown", "s3cret"),
    (None, None),
])
def test_authenticate_failures(registry, client_id, secret):
    with pytest.raises(InvalidClient):
        registry.authenticate(client_id, secret)


def test_secret_not_in_repr():
    client = Client(id="portal", secret="s3cret", redirect_domain="support.example.com")

    assert "s3cret" not in repr(client)


def test_from_config(config):
    registry = ClientRegistry.from_config(config)

    client = registry.lookup(config.client_id)
    assert client.secret == config.client_secret
    assert client.redirect_domain == "support.example.com"
