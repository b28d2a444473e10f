"""
Unit tests for the session authentication middleware.

Runs _authenticate_request() inside a bare Flask test_request_context:
no database, no blueprints.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from flask import Flask, g

from expensor.app.errors import AppError, ErrorCode
from expensor.app.middleware.auth_middleware import _authenticate_request

SECRET = "unit-test-secret"


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config.update(
        JWT_SECRET_KEY=SECRET,
        JWT_ALGORITHM="HS256",
        AUTH_COOKIE_NAME="auth_token",
    )
    return app


def _token(claims: dict | None = None, secret: str = SECRET, expires_in: int = 3600) -> str:
    now = datetime.now(timezone.utc)
    payload = {"oid": "oid-1", "iat": now, "exp": now + timedelta(seconds=expires_in)}
    payload.update(claims or {})
    return jwt.encode(payload, secret, algorithm="HS256")


def _auth_error(app, **request_kwargs) -> AppError:
    with app.test_request_context("/", **request_kwargs):
        with pytest.raises(AppError) as exc_info:
            _authenticate_request()
    return exc_info.value


def test_cookie_token_sets_user_id(app):
    with app.test_request_context("/", headers={"Cookie": f"auth_token={_token()}"}):
        _authenticate_request()
        assert g.user_id == "oid-1"


def test_bearer_header_is_accepted_without_cookie(app):
    with app.test_request_context("/", headers={"Authorization": f"Bearer {_token()}"}):
        _authenticate_request()
        assert g.user_id == "oid-1"


def test_cookie_wins_over_header(app):
    headers = {
        "Cookie": f"auth_token={_token({'oid': 'from-cookie'})}",
        "Authorization": f"Bearer {_token({'oid': 'from-header'})}",
    }
    with app.test_request_context("/", headers=headers):
        _authenticate_request()
        assert g.user_id == "from-cookie"


def test_missing_credentials_is_token_missing(app):
    err = _auth_error(app)
    assert err.code == ErrorCode.TOKEN_MISSING
    assert err.http_status == 401


def test_malformed_header_is_token_invalid(app):
    err = _auth_error(app, headers={"Authorization": "Token abc"})
    assert err.code == ErrorCode.TOKEN_INVALID


def test_wrong_signature_is_token_invalid(app):
    err = _auth_error(app, headers={"Authorization": f"Bearer {_token(secret='other')}"})
    assert err.code == ErrorCode.TOKEN_INVALID


def test_expired_token_is_token_expired(app):
    err = _auth_error(app, headers={"Authorization": f"Bearer {_token(expires_in=-10)}"})
    assert err.code == ErrorCode.TOKEN_EXPIRED


def test_blank_oid_is_token_invalid(app):
    err = _auth_error(app, headers={"Authorization": f"Bearer {_token({'oid': '  '})}"})
    assert err.code == ErrorCode.TOKEN_INVALID
