"""
schemas/share_schema.py — Marshmallow schemas for expense split endpoints.

Validation responsibility:
  - This file: field presence and types, decimal precision.
  - services/share_service.py:
      - SHARE_WOULD_BE_NEGATIVE (400) — needs the stored share
      - EXPENSE_NOT_FOUND (404), FORBIDDEN (403) — need the owning group

The amount on POST /expense-splits is a DELTA added to the current share and
may be negative. The amount on PUT /expense-splits is the absolute share.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate

from expensor.app.errors import ErrorCode

# NUMERIC(10, 2) holds at most 8 integer digits.
_MAX_AMOUNT = Decimal("99999999.99")


def _validate_precision(value: Decimal) -> None:
    """At most 2 decimal places; anything finer is rejected, never rounded."""
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)
    if abs(value) > _MAX_AMOUNT:
        raise ValidationError("Amount is too large.")


def _validate_not_negative(value: Decimal) -> None:
    if value < Decimal("0"):
        raise ValidationError("A share cannot be set to a negative amount.")


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_expense_id = dict(
    required=True,
    strict=True,
    validate=validate.Range(min=1, error="expense_id must be a positive integer."),
)
_user_id = dict(
    required=True,
    validate=[validate.Length(min=1, max=255), _validate_non_empty_after_trim],
)


class AddExpenseSplitSchema(Schema):
    """
    POST /expense-splits

    amount is signed: +60 assigns 60 more to the user, -10 takes 10 back.
    """

    expense_id = fields.Int(**_expense_id)
    user_id = fields.Str(**_user_id)
    amount = fields.Decimal(required=True, validate=_validate_precision)


class SetExpenseSplitSchema(Schema):
    """PUT /expense-splits — amount is the new absolute share (>= 0)."""

    expense_id = fields.Int(**_expense_id)
    user_id = fields.Str(**_user_id)
    amount = fields.Decimal(
        required=True,
        validate=[_validate_precision, _validate_not_negative],
    )


class RemoveExpenseSplitSchema(Schema):
    """POST /expense-splits/remove"""

    expense_id = fields.Int(**_expense_id)
    user_id = fields.Str(**_user_id)


class ExpenseSplitsQuerySchema(Schema):
    """
    GET /expense-splits?expenseId=

    Query strings are text, so the id is parsed leniently here (strict=False).
    """

    class Meta:
        unknown = EXCLUDE

    expenseId = fields.Int(
        required=True,
        validate=validate.Range(min=1, error="expenseId must be a positive integer."),
    )
