"""Initial schema — users, groups, memberships, group expenses and shares.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependency order):
  users → groups → group_members → group_expenses → group_expense_shares

ON DELETE policies:
  groups.admin / created_by          → CASCADE   (group goes with its admin)
  group_members.group_id             → CASCADE   (memberships owned by group)
  group_members.user_id              → RESTRICT
  group_expenses.group_id            → CASCADE   (expenses owned by group)
  group_expenses.paid_by             → RESTRICT
  group_expense_shares.expense_id    → CASCADE   (shares owned by expense)
  group_expense_shares.user_id       → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    # ── users ──────────────────────────────────────────────────────────────
    # Keyed by the identity provider's object id, not a surrogate integer.

    op.create_table(
        "users",
        sa.Column("microsoft_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("microsoft_id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
    )

    # ── groups ─────────────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "admin",
            sa.String(255),
            sa.ForeignKey("users.microsoft_id", ondelete="CASCADE", name="fk_groups_admin"),
            nullable=False,
        ),
        sa.Column(
            "created_by",
            sa.String(255),
            sa.ForeignKey("users.microsoft_id", ondelete="CASCADE", name="fk_groups_created_by"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    # ── group_members ──────────────────────────────────────────────────────
    # Composite PK: a duplicate insert is a unique violation (ALREADY_MEMBER).

    op.create_table(
        "group_members",
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_group_members_group"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(255),
            sa.ForeignKey("users.microsoft_id", name="fk_group_members_user"),
            nullable=False,
        ),
        sa.Column("contributed_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("owed_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("settled_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("group_id", "user_id", name="pk_group_members"),
    )

    # ── group_expenses ─────────────────────────────────────────────────────

    op.create_table(
        "group_expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_group_expenses_group"),
            nullable=False,
        ),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "paid_by",
            sa.String(255),
            sa.ForeignKey("users.microsoft_id", name="fk_group_expenses_paid_by"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_group_expenses_amount_positive"),
    )

    # ── group_expense_shares ───────────────────────────────────────────────
    # Composite PK is the ON CONFLICT target of the additive share upsert.

    op.create_table(
        "group_expense_shares",
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey(
                "group_expenses.id",
                ondelete="CASCADE",
                name="fk_group_expense_shares_expense",
            ),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(255),
            sa.ForeignKey("users.microsoft_id", name="fk_group_expense_shares_user"),
            nullable=False,
        ),
        sa.Column("share_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "paid",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("expense_id", "user_id", name="pk_group_expense_shares"),
        sa.CheckConstraint(
            "share_amount >= 0",
            name="ck_group_expense_shares_amount_non_negative",
        ),
    )

    # ── Indexes ────────────────────────────────────────────────────────────
    op.create_index("ix_groups_admin", "groups", ["admin"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])
    op.create_index("ix_group_expenses_group_id", "group_expenses", ["group_id"])


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_index("ix_group_expenses_group_id", table_name="group_expenses")
    op.drop_index("ix_group_members_user_id", table_name="group_members")
    op.drop_index("ix_groups_admin", table_name="groups")

    op.drop_table("group_expense_shares")
    op.drop_table("group_expenses")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("users")
