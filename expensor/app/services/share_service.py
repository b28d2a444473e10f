"""
services/share_service.py — Per-user shares of a group expense.

A share is the part of a group expense's amount attributed to one user's
debt. Shares are created lazily on first assignment, adjusted by signed
deltas, and deleted on explicit removal.

Invariants enforced here:
  - Only the admin of the group that owns the expense may mutate its shares
    (FORBIDDEN, 403). The payer has no special rights.
  - A stored share_amount is never negative (SHARE_WOULD_BE_NEGATIVE, 400).
    The group_expense_shares CHECK(share_amount >= 0) backs this up.

Delta semantics:
  adjust_share_by_delta() ADDS the amount to the current share; negative
  values reduce it. Callers that know the target value must compute the
  delta themselves, or call set_share() which writes an absolute value.
  The delta endpoint is not idempotent: a client that retries a POST after a
  timeout applies the delta twice. There is no idempotency key yet.

Atomicity (one transaction per call, committed by the route):
  1. The owning group's row is locked FOR SHARE while the admin is resolved
     through the expense -> group join. The admin cannot change until commit.
  2. The existing share row (if any) is locked FOR UPDATE and validated.
  3. The write is a single INSERT ... ON CONFLICT DO UPDATE whose update
     branch re-checks share_amount + delta >= 0 against the locked row, so two
     concurrent deltas for the same (expense, user) serialize on the row lock
     and neither is lost.
  Removal is one DELETE conditioned on EXISTS(admin of owning group).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expensor.app.errors import AppError, ErrorCode
from expensor.app.models.expense import GroupExpense
from expensor.app.models.group import Group
from expensor.app.models.share import ExpenseShare
from expensor.app.models.user import User
from expensor.app.services import group_service

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_CENT = Decimal("0.01")

# PostgreSQL SQLSTATE codes surfaced through IntegrityError.orig.pgcode
_FOREIGN_KEY_VIOLATION = "23503"
_CHECK_VIOLATION = "23514"


# ── Pure helpers ───────────────────────────────────────────────────────────

def format_amount(value: Decimal) -> str:
    """
    Renders an amount for user-facing messages: whole amounts without
    decimals ("60"), everything else with exactly two ("12.50").
    """
    value = abs(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return str(value.quantize(_CENT))


def negative_share_error(current: Decimal, delta: Decimal) -> AppError:
    """Builds the 400 carried back when a delta would push a share below zero."""
    return AppError(
        ErrorCode.SHARE_WOULD_BE_NEGATIVE,
        f"Impossibile sottrarre {format_amount(delta)}€. "
        f"L'utente ha una quota attuale di soli {format_amount(current)}€.",
        400,
        field="amount",
    )


def check_share_delta(current: Decimal, delta: Decimal) -> Decimal:
    """
    Returns current + delta, or raises SHARE_WOULD_BE_NEGATIVE (400) when the
    result is below zero. `current` is the most that can be subtracted.

    Decimal arithmetic only: 10.10 - 10.10 is exactly 0 and is accepted.
    """
    new_share = current + delta
    if new_share < _ZERO:
        raise negative_share_error(current, delta)
    return new_share


# ── Store access ───────────────────────────────────────────────────────────

def _lock_expense_admin(expense_id: int, session: Session) -> str:
    """
    Resolves the admin of the group owning `expense_id`, locking that group
    row FOR SHARE until the transaction ends.

    Raises EXPENSE_NOT_FOUND (404) when the expense resolves to no group.
    """
    stmt = (
        select(Group.admin)
        .join(GroupExpense, GroupExpense.group_id == Group.id)
        .where(GroupExpense.id == expense_id)
        .with_for_update(read=True, of=Group)
    )
    admin = session.execute(stmt).scalar_one_or_none()
    if admin is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return admin


def _current_share(expense_id: int, user_id: str, session: Session) -> Decimal:
    """Returns the locked current share for (expense, user), or 0 when absent."""
    amount = session.execute(
        select(ExpenseShare.share_amount)
        .where(
            ExpenseShare.expense_id == expense_id,
            ExpenseShare.user_id == user_id,
        )
        .with_for_update()
    ).scalar_one_or_none()
    return amount if amount is not None else _ZERO


def _execute_upsert(stmt, expense_id: int, user_id: str, session: Session):
    """
    Runs a share upsert and maps store-level constraint failures onto the
    error registry. Anything else propagates as an unexpected failure.
    """
    try:
        return session.execute(stmt).scalar_one_or_none()
    except IntegrityError as exc:
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode == _FOREIGN_KEY_VIOLATION:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
                404,
                field="user_id",
            ) from exc
        if pgcode == _CHECK_VIOLATION:
            raise AppError(
                ErrorCode.SHARE_WOULD_BE_NEGATIVE,
                f"The share of user {user_id} on expense {expense_id} cannot be negative.",
                400,
                field="amount",
            ) from exc
        raise


# ── Public service functions ───────────────────────────────────────────────

def adjust_share_by_delta(
        expense_id: int,
        user_id: str,
        delta: Decimal,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Adds `delta` to the user's share of an expense, creating the share with
    share_amount = delta (paid = false) if it does not exist yet.

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)       — expense resolves to no group
      AppError(FORBIDDEN, 403)               — requester is not the group admin
      AppError(SHARE_WOULD_BE_NEGATIVE, 400) — current + delta < 0
      AppError(USER_NOT_FOUND, 404)          — target user does not exist

    Returns: {"expense_id", "user_id", "amount"} with the stored share.
    """
    admin = _lock_expense_admin(expense_id, session)
    group_service.require_admin(admin, requester_id, "manage expense shares")

    current = _current_share(expense_id, user_id, session)
    check_share_delta(current, delta)

    stmt = insert(ExpenseShare).values(
        expense_id=expense_id,
        user_id=user_id,
        share_amount=delta,
        paid=False,
        last_updated=func.now(),
    )
    new_amount = ExpenseShare.__table__.c.share_amount + stmt.excluded.share_amount
    stmt = stmt.on_conflict_do_update(
        index_elements=[ExpenseShare.expense_id, ExpenseShare.user_id],
        set_={
            "share_amount": new_amount,
            "last_updated": func.now(),
        },
        where=new_amount >= 0,
    ).returning(ExpenseShare.share_amount)

    stored = _execute_upsert(stmt, expense_id, user_id, session)
    if stored is None:
        # The conditional update branch refused: another transaction moved the
        # share between our read and our write.
        raise negative_share_error(
            _current_share(expense_id, user_id, session), delta,
        )

    session.flush()
    logger.info(
        "Share adjusted (expense=%s, user=%s, delta=%s, stored=%s)",
        expense_id, user_id, delta, stored,
    )
    return {"expense_id": expense_id, "user_id": user_id, "amount": stored}


def set_share(
        expense_id: int,
        user_id: str,
        amount: Decimal,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Sets the user's share of an expense to an absolute, non-negative value.

    Same authorization and locking as adjust_share_by_delta(). Retrying the
    call with the same amount is harmless.

    Returns: {"expense_id", "user_id", "amount"} with the stored share.
    """
    if amount < _ZERO:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "A share cannot be set to a negative amount.",
            400,
            field="amount",
        )

    admin = _lock_expense_admin(expense_id, session)
    group_service.require_admin(admin, requester_id, "manage expense shares")

    stmt = insert(ExpenseShare).values(
        expense_id=expense_id,
        user_id=user_id,
        share_amount=amount,
        paid=False,
        last_updated=func.now(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[ExpenseShare.expense_id, ExpenseShare.user_id],
        set_={
            "share_amount": stmt.excluded.share_amount,
            "last_updated": func.now(),
        },
    ).returning(ExpenseShare.share_amount)

    stored = _execute_upsert(stmt, expense_id, user_id, session)
    session.flush()
    return {"expense_id": expense_id, "user_id": user_id, "amount": stored}


def remove_share(
        expense_id: int,
        user_id: str,
        requester_id: str,
        session: Session,
) -> bool:
    """
    Deletes the user's share of an expense. Admin only. Idempotent: removing a
    share that does not exist succeeds once authorization passes.

    The admin predicate is part of the DELETE itself. Only when nothing was
    deleted is the expense looked up again, to tell "not found" and "not
    admin" apart from "already gone".

    Raises:
      AppError(EXPENSE_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)

    Returns: True if a row was deleted, False if there was nothing to delete.
    """
    requester_is_admin = (
        select(GroupExpense.id)
        .join(Group, Group.id == GroupExpense.group_id)
        .where(
            GroupExpense.id == expense_id,
            Group.admin == requester_id,
        )
        .exists()
    )
    stmt = (
        delete(ExpenseShare)
        .where(
            ExpenseShare.expense_id == expense_id,
            ExpenseShare.user_id == user_id,
            requester_is_admin,
        )
        .returning(ExpenseShare.user_id)
    )
    deleted = session.execute(stmt).scalars().all()
    if deleted:
        session.flush()
        return True

    admin = _lock_expense_admin(expense_id, session)
    group_service.require_admin(admin, requester_id, "manage expense shares")
    return False


def list_shares(expense_id: int, session: Session) -> list[dict]:
    """
    Returns every share of an expense with the user's display name and email.
    Order is not significant.
    """
    stmt = (
        select(
            ExpenseShare.user_id,
            ExpenseShare.share_amount,
            ExpenseShare.last_updated,
            User.name,
            User.email,
        )
        .join(User, User.microsoft_id == ExpenseShare.user_id)
        .where(ExpenseShare.expense_id == expense_id)
    )
    return [
        {
            "user_id": row.user_id,
            "amount": row.share_amount,
            "last_updated": row.last_updated.isoformat() if row.last_updated else None,
            "user_name": row.name,
            "user_email": row.email,
        }
        for row in session.execute(stmt).all()
    ]


def expense_share_summary(expense_id: int, amount: Decimal, session: Session) -> dict:
    """
    Reconciles an expense total against its shares:

      assigned_amount   = sum of all shares
      unassigned_amount = amount - assigned_amount (negative when over-assigned)

    Shares move one user at a time, so an expense is routinely under- or
    over-assigned while the admin is still distributing it.
    """
    assigned = session.execute(
        select(func.coalesce(func.sum(ExpenseShare.share_amount), 0))
        .where(ExpenseShare.expense_id == expense_id)
    ).scalar_one()
    assigned = Decimal(assigned)
    return {
        "assigned_amount": assigned,
        "unassigned_amount": amount - assigned,
    }
