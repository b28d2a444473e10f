"""
schemas/expense_schema.py — Marshmallow schemas for group expense endpoints.

Validation responsibility:
  - This file:
      - Field types and lengths
      - amount strictly positive with at most 2 decimal places
  - services/expense_service.py:
      - GROUP_NOT_FOUND (404) and FORBIDDEN (403) — require the group row
      - REMOVE_EXPENSE_FAILED (403) — decided by the conditional delete

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate

from expensor.app.errors import ErrorCode


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated. The column is
# NUMERIC(10, 2) with CHECK (amount > 0).
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Validates an expense total:
      - Must be strictly greater than zero.
      - Must have at most 2 decimal places.
      - Must fit NUMERIC(10, 2).

    The error handler detects INVALID_AMOUNT_PRECISION by matching the
    raised ValidationError message to the known ErrorCode constant.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)

    if value > Decimal("99999999.99"):
        raise ValidationError("Amount is too large.")


class AddGroupExpenseSchema(Schema):
    """
    POST /group-expenses

    The payer is the authenticated admin; it is never taken from the body.
    """

    group_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255, error="Description must be at most 255 characters."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )


class RemoveGroupExpenseSchema(Schema):
    """POST /group-expenses/remove — camelCase keys, as the frontend sends them."""

    groupId = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="groupId must be a positive integer."),
    )
    expenseId = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="expenseId must be a positive integer."),
    )


class GroupExpensesQuerySchema(Schema):
    """GET /group-expenses?group_id="""

    class Meta:
        unknown = EXCLUDE

    group_id = fields.Int(
        required=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )
