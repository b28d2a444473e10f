"""
routes/group_expenses.py — Group expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1/group-expenses):
  POST   /group-expenses                 → 201  record expense (admin only)
  GET    /group-expenses?group_id=       → 200  group's expenses, newest first
  GET    /group-expenses/:id             → 200  expense + share reconciliation
  POST   /group-expenses/remove          → 200  delete expense (admin only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from expensor.app.extensions import db
from expensor.app.middleware.auth_middleware import require_auth
from expensor.app.schemas.expense_schema import (
    AddGroupExpenseSchema,
    GroupExpensesQuerySchema,
    RemoveGroupExpenseSchema,
)
from expensor.app.services import expense_service

group_expenses_bp = Blueprint("group_expenses", __name__)


@group_expenses_bp.route("", methods=["POST"])
@require_auth
def add_group_expense():
    """POST /group-expenses — The admin records an expense they paid."""
    data = AddGroupExpenseSchema().load(request.get_json(force=True) or {})
    result = expense_service.add_group_expense(
        group_id=data["group_id"],
        description=data["description"],
        amount=data["amount"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@group_expenses_bp.route("", methods=["GET"])
@require_auth
def list_group_expenses():
    """GET /group-expenses?group_id="""
    data = GroupExpensesQuerySchema().load(request.args)
    result = expense_service.list_group_expenses(data["group_id"], session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@group_expenses_bp.route("/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    """GET /group-expenses/:id"""
    result = expense_service.get_expense(expense_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@group_expenses_bp.route("/remove", methods=["POST"])
@require_auth
def remove_group_expense():
    """POST /group-expenses/remove — Shares go with the expense (FK cascade)."""
    data = RemoveGroupExpenseSchema().load(request.get_json(force=True) or {})
    expense_service.remove_group_expense(
        group_id=data["groupId"],
        expense_id=data["expenseId"],
        requester_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"removed": True, "expense_id": data["expenseId"]},
        "warnings": [],
    }), 200
