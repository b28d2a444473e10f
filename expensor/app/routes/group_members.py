"""
routes/group_members.py — Group membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Membership changes notify the affected user by email. The notice is built
and handed to the notifier only AFTER the commit, and any failure on that
path is logged and swallowed: the response reflects the membership change,
never the email.

Endpoints (url_prefix=/api/v1/group-members):
  GET    /group-members?group_id=                        → 200  members
  GET    /group-members/single?group_id=&microsoft_id=   → 200  list of 0 or 1
  POST   /group-members                                  → 200  add (admin only)
  POST   /group-members/remove                           → 200  remove (admin only)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from expensor.app.extensions import db
from expensor.app.middleware.auth_middleware import require_auth
from expensor.app.schemas.membership_schema import (
    AddGroupMemberSchema,
    GroupMembersQuerySchema,
    RemoveGroupMemberSchema,
    SingleGroupMemberQuerySchema,
)
from expensor.app.services import membership_service, notification_service

group_members_bp = Blueprint("group_members", __name__)


def _notify(build_notice, *args) -> None:
    """Builds a notice from committed state and dispatches it, best-effort."""
    try:
        notice = build_notice(*args, session=db.session)
    except Exception:
        current_app.logger.exception("Could not build %s", build_notice.__name__)
        db.session.rollback()
        return
    notification_service.dispatch(current_app.extensions["notifier"], notice)


@group_members_bp.route("", methods=["GET"])
@require_auth
def list_members():
    """GET /group-members?group_id="""
    data = GroupMembersQuerySchema().load(request.args)
    result = membership_service.list_members(data["group_id"], session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@group_members_bp.route("/single", methods=["GET"])
@require_auth
def get_member():
    """GET /group-members/single — Membership row with counters, if any."""
    data = SingleGroupMemberQuerySchema().load(request.args)
    result = membership_service.get_member(
        data["group_id"], data["microsoft_id"], session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@group_members_bp.route("", methods=["POST"])
@require_auth
def add_member():
    """POST /group-members — Add a user to a group. Admin only."""
    data = AddGroupMemberSchema().load(request.get_json(force=True) or {})
    result = membership_service.add_member(
        group_id=data["group_id"],
        user_id=data["microsoft_id"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()

    _notify(
        membership_service.member_added_notice,
        data["group_id"],
        data["microsoft_id"],
        current_app.config["FRONTEND_URL"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@group_members_bp.route("/remove", methods=["POST"])
@require_auth
def remove_member():
    """POST /group-members/remove — Remove a user from a group. Admin only."""
    data = RemoveGroupMemberSchema().load(request.get_json(force=True) or {})
    membership_service.remove_member(
        group_id=data["groupId"],
        user_id=data["removedId"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()

    _notify(membership_service.member_removed_notice, data["groupId"], data["removedId"])
    return jsonify({
        "data": {
            "removed": True,
            "group_id": data["groupId"],
            "user_id": data["removedId"],
        },
        "warnings": [],
    }), 200
