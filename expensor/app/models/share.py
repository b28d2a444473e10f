"""
models/share.py — ExpenseShare table definition.

One row per (expense, user): the portion of the expense's amount attributed
to that member's debt. No business logic. No imports from services or routes.

Key design points:
  - Composite primary key (expense_id, user_id) — at most one share per user
    per expense. share_service relies on it as the ON CONFLICT target of the
    additive upsert.
  - `share_amount` uses Numeric(10, 2) and CHECK(share_amount >= 0). The
    service rejects negative results before writing; the CHECK is the last
    resort if a concurrent writer slips past the service check.
  - expense_id is ON DELETE CASCADE — shares are owned by their expense.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expensor.app.extensions import db


class ExpenseShare(db.Model):
    __tablename__ = "group_expense_shares"

    __table_args__ = (
        CheckConstraint(
            "share_amount >= 0",
            name="ck_group_expense_shares_amount_non_negative",
        ),
    )

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("group_expenses.id", ondelete="CASCADE"),
        primary_key=True,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.microsoft_id"),
        primary_key=True,
    )

    share_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["GroupExpense"] = relationship(  # noqa: F821
        "GroupExpense",
        back_populates="shares",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="shares",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseShare expense_id={self.expense_id} "
            f"user_id={self.user_id!r} "
            f"share_amount={self.share_amount}>"
        )
