"""
schemas/membership_schema.py — Marshmallow schemas for group member endpoints.

Field names follow the wire contract the frontend already speaks:
add uses snake_case {group_id, microsoft_id}, remove uses camelCase
{groupId, removedId}.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _group_id(**kwargs) -> fields.Int:
    return fields.Int(
        required=True,
        validate=validate.Range(min=1, error="Group id must be a positive integer."),
        **kwargs,
    )


def _user_id() -> fields.Str:
    return fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=255), _validate_non_empty_after_trim],
    )


class AddGroupMemberSchema(Schema):
    """POST /group-members — whether the user exists is a service concern."""

    group_id = _group_id(strict=True)
    microsoft_id = _user_id()


class RemoveGroupMemberSchema(Schema):
    """POST /group-members/remove"""

    groupId = _group_id(strict=True)
    removedId = _user_id()


class GroupMembersQuerySchema(Schema):
    """GET /group-members?group_id="""

    class Meta:
        unknown = EXCLUDE

    group_id = _group_id()


class SingleGroupMemberQuerySchema(Schema):
    """GET /group-members/single?group_id=&microsoft_id="""

    class Meta:
        unknown = EXCLUDE

    group_id = _group_id()
    microsoft_id = _user_id()
