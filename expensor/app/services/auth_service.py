"""
services/auth_service.py — Session issuance and user lookup.

Responsibilities:
  - First-login registration (check-or-create of the user row)
  - Session JWT creation (HS256), carried to the browser in the auth_token cookie
  - User lookups needed by the group screens (by id, by email)

Identity comes from the external identity provider: the client sends the
provider's object id (`microsoft_id`), email and display name after signing
in. This service does not verify provider tokens; it issues the application
session that every other endpoint authenticates against.

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes beyond AppError
  - current_app.config is used ONLY to read the JWT secret and session TTL
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from expensor.app.errors import AppError, ErrorCode
from expensor.app.models.user import User


# ── Private helpers ────────────────────────────────────────────────────────

def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "microsoft_id": user.microsoft_id,
        "email": user.email,
        "name": user.name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def create_session_token(microsoft_id: str, email: str, name: str | None) -> str:
    """
    Creates the signed session JWT.
    Payload: oid (user id), email, name, iat, exp, jti.
    TTL from current_app.config["AUTH_TOKEN_TTL"] (timedelta).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "oid": microsoft_id,
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + current_app.config["AUTH_TOKEN_TTL"],
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


# ── Public service functions ───────────────────────────────────────────────

def save_user(
        microsoft_id: str,
        email: str,
        name: str | None,
        session: Session,
) -> dict:
    """
    Registers the user on first login and issues a session token.

    The insert is `ON CONFLICT DO NOTHING`, so concurrent first logins of the
    same user cannot create two rows or fail with a unique violation.

    Raises:
      AppError(ALREADY_REGISTERED, 409) — the email belongs to another identity

    Returns: {"user": {...}, "token": "..."}
    """
    session.execute(
        insert(User)
        .values(microsoft_id=microsoft_id, email=email, name=name)
        .on_conflict_do_nothing()
    )

    user = session.get(User, microsoft_id)
    if user is None:
        raise AppError(
            ErrorCode.ALREADY_REGISTERED,
            f"The email address '{email}' is linked to a different account.",
            409,
            field="email",
        )

    return {
        "user": _build_user_dict(user),
        "token": create_session_token(user.microsoft_id, user.email, user.name),
    }


def get_user(microsoft_id: str, session: Session) -> dict:
    """Returns the user's profile or raises USER_NOT_FOUND (404)."""
    user = session.get(User, microsoft_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {microsoft_id} does not exist.",
            404,
        )
    return _build_user_dict(user)


def find_users_by_email(email: str, session: Session) -> list[dict]:
    """
    Looks a user up by email, the way the add-member screen resolves an id.

    Returns an empty list rather than 404 so the client can branch on length.
    """
    users = session.execute(
        select(User).where(User.email == email)
    ).scalars().all()
    return [_build_user_dict(u) for u in users]
