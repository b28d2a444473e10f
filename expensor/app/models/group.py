"""
models/group.py — Group table definition.

No business logic. No imports from services or routes.

A group has exactly one admin at a time. The creator becomes both
`created_by` and `admin`. Deleting a group cascades to its memberships and
expenses (FK ON DELETE CASCADE on the child tables); the store enforces it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expensor.app.extensions import db


class Group(db.Model):
    # 'groups' is a reserved word in some SQL dialects but is valid in
    # PostgreSQL as a quoted identifier; SQLAlchemy handles quoting.
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # The only user allowed to mutate membership, expenses and shares.
    admin: Mapped[str] = mapped_column(
        ForeignKey("users.microsoft_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_by: Mapped[str] = mapped_column(
        ForeignKey("users.microsoft_id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    admin_user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[admin],
    )

    members: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="group",
        passive_deletes=True,
    )

    expenses: Mapped[list["GroupExpense"]] = relationship(  # noqa: F821
        "GroupExpense",
        back_populates="group",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r} admin={self.admin!r}>"
