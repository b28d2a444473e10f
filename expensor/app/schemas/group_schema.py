"""
schemas/group_schema.py — Marshmallow schemas for group endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - GROUP_NOT_FOUND (requires DB lookup)
      - FORBIDDEN       (admin check requires DB lookup)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate


# ── Shared non-empty string validator ─────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks,
# mirroring the DB CHECK(LENGTH(TRIM(name)) > 0) on groups.name.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """
    POST /groups

    name — non-empty after trim, max 255 chars (VARCHAR(255)).
    The creator comes from the session, never from the body.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Group name must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )


class RemoveGroupSchema(Schema):
    """POST /groups/remove"""

    group_id = fields.Int(
        required=True,
        strict=True,  # reject floats like 1.0
        validate=validate.Range(
            min=1,
            error="group_id must be a positive integer.",
        ),
    )
