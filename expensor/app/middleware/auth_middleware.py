"""
middleware/auth_middleware.py — session authentication decorator.

The @require_auth decorator:
  1. Reads the session JWT from the auth_token cookie (browser clients) or,
     when no cookie is present, from an "Authorization: Bearer <token>" header
  2. Verifies the HS256 signature and the exp claim
  3. Attaches the caller's user id (the `oid` claim, a string) to flask.g
  4. Raises the appropriate 401 error if any step fails

Strict responsibility boundary:
  - This middleware resolves WHO is calling. It does not decide whether the
    caller is a group admin; that belongs in the service layer.
    Middleware = authentication (401). Service = authorization (403).
  - Services receive user_id as a plain string argument, with no knowledge
    of JWT, cookies or headers.

Error codes:
  TOKEN_MISSING  (401) — no cookie and no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or missing oid
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from expensor.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces session authentication.

    Attaches the authenticated user's id to flask.g.user_id.
    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @splits_bp.route("", methods=["POST"])
        @require_auth
        def add_expense_split():
            requester_id = g.user_id  # always a non-empty str when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _read_raw_token() -> str:
    """Returns the raw session token from the cookie or the Bearer header."""
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth_token")
    raw_token = request.cookies.get(cookie_name)
    if raw_token:
        return raw_token

    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Log in to obtain a session.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return parts[1]


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Separated from the decorator wrapper for testability — can be called
    directly in tests inside a test_request_context.
    """
    raw_token = _read_raw_token()

    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The session has expired. Log in again.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, invalid claims, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token is invalid or has been tampered with.",
            401,
        )

    user_id = payload.get("oid")
    if not isinstance(user_id, str) or not user_id.strip():
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token is missing the required 'oid' claim.",
            401,
        )

    g.user_id = user_id
