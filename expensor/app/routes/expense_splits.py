"""
routes/expense_splits.py — Per-user share route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

POST adds a signed DELTA to the user's current share. It is not safe to
retry blindly: a resent request applies the delta again. Clients that know
the target amount should use PUT, which writes the absolute value.

Endpoints (url_prefix=/api/v1/expense-splits):
  POST   /expense-splits            → 200  adjust share by delta (admin only)
  PUT    /expense-splits            → 200  set absolute share (admin only)
  POST   /expense-splits/remove     → 200  delete share, idempotent (admin only)
  GET    /expense-splits?expenseId= → 200  every share of the expense
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from expensor.app.extensions import db
from expensor.app.middleware.auth_middleware import require_auth
from expensor.app.schemas.share_schema import (
    AddExpenseSplitSchema,
    ExpenseSplitsQuerySchema,
    RemoveExpenseSplitSchema,
    SetExpenseSplitSchema,
)
from expensor.app.services import share_service

expense_splits_bp = Blueprint("expense_splits", __name__)


@expense_splits_bp.route("", methods=["POST"])
@require_auth
def add_expense_split():
    """POST /expense-splits — amount is added to the current share."""
    data = AddExpenseSplitSchema().load(request.get_json(force=True) or {})
    result = share_service.adjust_share_by_delta(
        expense_id=data["expense_id"],
        user_id=data["user_id"],
        delta=data["amount"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@expense_splits_bp.route("", methods=["PUT"])
@require_auth
def set_expense_split():
    """PUT /expense-splits — amount replaces the current share."""
    data = SetExpenseSplitSchema().load(request.get_json(force=True) or {})
    result = share_service.set_share(
        expense_id=data["expense_id"],
        user_id=data["user_id"],
        amount=data["amount"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@expense_splits_bp.route("/remove", methods=["POST"])
@require_auth
def remove_expense_split():
    """POST /expense-splits/remove — Succeeds even if the share is already gone."""
    data = RemoveExpenseSplitSchema().load(request.get_json(force=True) or {})
    removed = share_service.remove_share(
        expense_id=data["expense_id"],
        user_id=data["user_id"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "expense_id": data["expense_id"],
            "user_id": data["user_id"],
            "removed": removed,
        },
        "warnings": [],
    }), 200


@expense_splits_bp.route("", methods=["GET"])
@require_auth
def list_expense_splits():
    """
    GET /expense-splits?expenseId=

    Older clients send expenseId in a JSON body instead of the query string;
    the query string wins when both are present.
    """
    params = request.args
    if "expenseId" not in params:
        params = request.get_json(silent=True) or {}
    data = ExpenseSplitsQuerySchema().load(params)
    result = share_service.list_shares(data["expenseId"], session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
