"""
services/expense_service.py — Group expense ledger.

Authorization rules:
  - Create: group admin only; the admin is recorded as the payer.
  - List / get: any authenticated user.
  - Delete: group admin only, and only when the expense belongs to the group
    named in the request.

Atomicity:
  - Create locks the group row FOR SHARE before the admin check (see
    group_service.get_group_admin), so the admin cannot change between the
    check and the insert.
  - Delete is ONE statement: DELETE ... WHERE id AND group_id AND EXISTS
    (group admin = requester) RETURNING id. There is no separate SELECT whose
    result could be stale by the time the DELETE runs.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain values; returns dicts or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session

from expensor.app.errors import AppError, ErrorCode
from expensor.app.models.expense import GroupExpense
from expensor.app.models.group import Group
from expensor.app.models.user import User
from expensor.app.services import group_service, share_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _build_expense_dict(expense: GroupExpense) -> dict:
    """Serialises a GroupExpense to a plain dict. Amounts stay Decimal."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "description": expense.description,
        "amount": expense.amount,
        "paid_by": expense.paid_by,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def get_expense_group(expense_id: int, session: Session) -> int:
    """Returns the id of the group owning an expense or raises EXPENSE_NOT_FOUND."""
    group_id = session.execute(
        select(GroupExpense.group_id).where(GroupExpense.id == expense_id)
    ).scalar_one_or_none()

    if group_id is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return group_id


def add_group_expense(
        group_id: int,
        description: str | None,
        amount: Decimal,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Records a shared expense paid by the group admin.

    Raises:
      AppError(GROUP_NOT_FOUND, 404) — group does not exist
      AppError(FORBIDDEN, 403)       — requester is not the group admin

    Returns: dict with the new expense's columns.
    """
    admin = group_service.get_group_admin(group_id, session, lock=True)
    group_service.require_admin(admin, requester_id, "add expenses to this group")

    expense = GroupExpense(
        group_id=group_id,
        description=description,
        amount=amount,
        paid_by=requester_id,
    )
    session.add(expense)
    session.flush()
    session.refresh(expense)  # load server-side created_at

    return _build_expense_dict(expense)


def list_group_expenses(group_id: int, session: Session) -> list[dict]:
    """Returns every expense of a group, newest first."""
    stmt = (
        select(GroupExpense)
        .where(GroupExpense.group_id == group_id)
        .order_by(GroupExpense.created_at.desc(), GroupExpense.id.desc())
    )
    return [_build_expense_dict(e) for e in session.execute(stmt).scalars().all()]


def get_expense(expense_id: int, session: Session) -> dict:
    """
    Returns one expense with the payer's display name plus assigned_amount
    and unassigned_amount (see share_service.expense_share_summary).
    """
    row = session.execute(
        select(GroupExpense, User.name)
        .join(User, User.microsoft_id == GroupExpense.paid_by)
        .where(GroupExpense.id == expense_id)
    ).one_or_none()

    if row is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )

    expense, payer_name = row
    result = _build_expense_dict(expense)
    result["paid_by_name"] = payer_name
    result.update(share_service.expense_share_summary(expense_id, expense.amount, session))
    return result


def remove_group_expense(
        group_id: int,
        expense_id: int,
        requester_id: str,
        session: Session,
) -> None:
    """
    Deletes an expense (and, by cascade, its shares). Admin only.

    The authorization predicate and the delete are one statement. When no row
    is deleted the caller gets a single generic error: the expense may not
    exist, may belong to another group, or the requester may not be admin.

    Raises:
      AppError(REMOVE_EXPENSE_FAILED, 403)
    """
    admin_owns_group = exists().where(
        Group.id == group_id,
        Group.admin == requester_id,
    )
    stmt = (
        delete(GroupExpense)
        .where(
            GroupExpense.id == expense_id,
            GroupExpense.group_id == group_id,
            admin_owns_group,
        )
        .returning(GroupExpense.id)
    )
    deleted = session.execute(stmt).scalars().all()

    if not deleted:
        logger.warning(
            "Expense removal affected no rows (group=%s, expense=%s, requester=%s)",
            group_id, expense_id, requester_id,
        )
        raise AppError(
            ErrorCode.REMOVE_EXPENSE_FAILED,
            "Operation failed: the expense was not found or you are not the group admin.",
            403,
        )
    session.flush()
