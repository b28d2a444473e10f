"""
routes/users.py — Login, logout and user lookup.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/users):
  POST   /users/login            → 200  save user, set session cookie
  POST   /users/logout           → 200  clear session cookie
  GET    /users/me               → 200  caller's profile
  GET    /users/by-email?email=  → 200  list (empty when unknown)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from expensor.app.extensions import db
from expensor.app.middleware.auth_middleware import require_auth
from expensor.app.schemas.user_schema import SaveUserSchema, UserByEmailQuerySchema
from expensor.app.services import auth_service

users_bp = Blueprint("users", __name__)


def _set_session_cookie(response, token: str) -> None:
    config = current_app.config
    response.set_cookie(
        config["AUTH_COOKIE_NAME"],
        token,
        max_age=int(config["AUTH_TOKEN_TTL"].total_seconds()),
        httponly=True,
        secure=config["AUTH_COOKIE_SECURE"],
        samesite=config["AUTH_COOKIE_SAMESITE"],
    )


@users_bp.route("/login", methods=["POST"])
def login():
    """POST /users/login — Register on first login; issue the session cookie."""
    data = SaveUserSchema().load(request.get_json(force=True) or {})
    result = auth_service.save_user(
        microsoft_id=data["microsoft_id"],
        email=data["email"],
        name=data["name"],
        session=db.session,
    )
    db.session.commit()

    response = jsonify({"data": result, "warnings": []})
    _set_session_cookie(response, result["token"])
    return response, 200


@users_bp.route("/logout", methods=["POST"])
def logout():
    """POST /users/logout — Clear the session cookie. No auth required."""
    config = current_app.config
    response = jsonify({"data": {"logged_out": True}, "warnings": []})
    response.delete_cookie(
        config["AUTH_COOKIE_NAME"],
        httponly=True,
        secure=config["AUTH_COOKIE_SECURE"],
        samesite=config["AUTH_COOKIE_SAMESITE"],
    )
    return response, 200


@users_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /users/me"""
    result = auth_service.get_user(g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/by-email", methods=["GET"])
@require_auth
def get_user_by_email():
    """GET /users/by-email?email= — Resolve a user id from an email address."""
    data = UserByEmailQuerySchema().load(request.args)
    result = auth_service.find_users_by_email(data["email"], session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
