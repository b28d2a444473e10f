"""
schemas/user_schema.py — Marshmallow schemas for user endpoints.

The login body carries what the identity provider returned to the client:
the provider's object id, the account email and an optional display name.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class SaveUserSchema(Schema):
    """POST /users/login"""

    microsoft_id = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=255), _validate_non_empty_after_trim],
    )

    # marshmallow's Email field applies RFC-5322-compatible validation.
    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    name = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )


class UserByEmailQuerySchema(Schema):
    """GET /users/by-email?email="""

    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
