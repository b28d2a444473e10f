"""
routes/groups.py — Group route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups              → 201  create group (caller becomes admin)
  GET    /groups              → 200  groups the caller created, runs or joined
  GET    /groups/:id          → 200  group details
  GET    /groups/:id/admin    → 200  admin id and display name
  POST   /groups/remove       → 200  delete group (admin only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from expensor.app.extensions import db
from expensor.app.middleware.auth_middleware import require_auth
from expensor.app.schemas.group_schema import CreateGroupSchema, RemoveGroupSchema
from expensor.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"].strip(),
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups"""
    result = group_service.list_groups(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id"""
    result = group_service.get_group(group_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/admin", methods=["GET"])
@require_auth
def get_group_admin(group_id: int):
    """GET /groups/:id/admin"""
    result = group_service.get_group_admin_info(group_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/remove", methods=["POST"])
@require_auth
def remove_group():
    """POST /groups/remove — Delete a group with everything in it. Admin only."""
    data = RemoveGroupSchema().load(request.get_json(force=True) or {})
    group_service.delete_group(
        group_id=data["group_id"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "group_id": data["group_id"]},
        "warnings": [],
    }), 200
