"""
models/expense.py — GroupExpense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(10, 2) — never Float — and must be positive.
  - group_id is ON DELETE CASCADE — expenses are owned by their group.
  - Shares are owned by the expense (ON DELETE CASCADE on group_expense_shares).
  - `paid_by` is always the group admin who recorded the expense.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expensor.app.extensions import db


class GroupExpense(db.Model):
    __tablename__ = "group_expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_group_expenses_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    paid_by: Mapped[str] = mapped_column(
        ForeignKey("users.microsoft_id"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[paid_by],
    )

    shares: Mapped[list["ExpenseShare"]] = relationship(  # noqa: F821
        "ExpenseShare",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupExpense id={self.id} "
            f"group_id={self.group_id} "
            f"amount={self.amount}>"
        )
