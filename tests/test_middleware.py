"""Tests for portal login verification."""

import jwt

from conftest import PORTAL_JWT_SECRET, make_login_token
from support_oauth.middleware import verify_login_token


def test_valid_login_token():
    assert verify_login_token(make_login_token("42"), PORTAL_JWT_SECRET) == "42"


def test_expired_login_token():
    assert verify_login_token(make_login_token(expires_in=-5), PORTAL_JWT_SECRET) is None


def test_wrong_audience():
    assert verify_login_token(make_login_token(audience="api"), PORTAL_JWT_SECRET) is None


def test_wrong_signing_key():
    assert verify_login_token(make_login_token(secret="other"), PORTAL_JWT_SECRET) is None


def test_subject_must_be_numeric():
    assert verify_login_token(make_login_token("alice"), PORTAL_JWT_SECRET) is None


def test_expiry_is_required():
    token = jwt.encode({"sub": "42", "aud": "login"}, PORTAL_JWT_SECRET, algorithm="HS256")

    assert verify_login_token(token, PORTAL_JWT_SECRET) is None


def test_unprotected_paths_pass_without_login(client):
    assert client.get("/health").status_code == 200
