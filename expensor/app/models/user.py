"""
models/user.py — User table definition.

Users are identified by the external identity provider's object id
(`microsoft_id`). Every other table references that string, never a
surrogate integer key. No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expensor.app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    microsoft_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    # Display name as reported by the identity provider; may be missing.
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────
    # Read-only navigation.

    memberships: Mapped[list["GroupMember"]] = relationship(  # noqa: F821
        "GroupMember",
        back_populates="user",
    )

    shares: Mapped[list["ExpenseShare"]] = relationship(  # noqa: F821
        "ExpenseShare",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User microsoft_id={self.microsoft_id!r} email={self.email!r}>"
