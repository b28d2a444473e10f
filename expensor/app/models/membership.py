"""
models/membership.py — GroupMember junction table definition.

No business logic. No imports from services or routes.

Composite primary key (group_id, user_id): a user belongs to a group at most
once. A duplicate insert surfaces as an IntegrityError (unique violation)
which membership_service reports as ALREADY_MEMBER (409). Rows are never
upserted.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expensor.app.extensions import db


class GroupMember(db.Model):
    __tablename__ = "group_members"

    # ON DELETE CASCADE: memberships disappear with their group.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
    )

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.microsoft_id"),
        primary_key=True,
        index=True,
    )

    # Financial counters start at zero on insert. NUMERIC(10, 2), never Float.
    contributed_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        server_default="0",
    )

    owed_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        server_default="0",
    )

    settled_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        server_default="0",
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="members",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupMember group_id={self.group_id} "
            f"user_id={self.user_id!r}>"
        )
