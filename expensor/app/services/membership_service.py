"""
services/membership_service.py — Admin-gated group membership.

Membership lifecycle:
  NonMember --add_member (admin)--> Member --remove_member (admin)--> NonMember
  add_member on a Member is a conflict (ALREADY_MEMBER, 409), never a no-op.

Authorization and atomicity:
  - add_member locks the group row FOR SHARE, checks the admin, then inserts
    inside a SAVEPOINT. The composite primary key decides duplicates; the
    unique violation is mapped to ALREADY_MEMBER. There is no pre-SELECT.
  - remove_member is ONE statement: DELETE ... WHERE membership matches AND
    EXISTS (group with admin = requester) RETURNING user_id. An empty result
    is reported as REMOVE_MEMBER_FAILED (403) without saying whether the
    requester is not admin or the member does not exist.

Notifications are not sent from here. The route commits first and then asks
for a notice (member_added_notice / member_removed_notice) to hand to the
notifier.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from expensor.app.errors import AppError, ErrorCode
from expensor.app.models.group import Group
from expensor.app.models.membership import GroupMember
from expensor.app.models.user import User
from expensor.app.services import group_service
from expensor.app.services.notification_service import MemberAddedNotice, MemberRemovedNotice

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes surfaced through IntegrityError.orig.pgcode
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"


# ── Public service functions ───────────────────────────────────────────────

def add_member(
        group_id: int,
        user_id: str,
        requester_id: str,
        session: Session,
) -> dict:
    """
    Adds a user to a group with zeroed financial counters. Admin only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404) — group does not exist
      AppError(FORBIDDEN, 403)       — requester is not the group admin
      AppError(USER_NOT_FOUND, 404)  — user does not exist
      AppError(ALREADY_MEMBER, 409)  — user is already in the group

    Returns: dict with the new membership.
    """
    admin = group_service.get_group_admin(group_id, session, lock=True)
    group_service.require_admin(admin, requester_id, "add members to this group")

    try:
        with session.begin_nested():
            session.add(GroupMember(group_id=group_id, user_id=user_id))
            session.flush()
    except IntegrityError as exc:
        pgcode = getattr(exc.orig, "pgcode", None)
        if pgcode == _UNIQUE_VIOLATION:
            raise AppError(
                ErrorCode.ALREADY_MEMBER,
                f"User {user_id} is already a member of group {group_id}.",
                409,
            ) from exc
        if pgcode == _FOREIGN_KEY_VIOLATION:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {user_id} does not exist.",
                404,
                field="microsoft_id",
            ) from exc
        raise

    logger.info("User %s added to group %s by %s", user_id, group_id, requester_id)
    return {"group_id": group_id, "user_id": user_id}


def remove_member(
        group_id: int,
        user_id: str,
        requester_id: str,
        session: Session,
) -> None:
    """
    Removes a user from a group. Admin only; the admin check and the delete
    are a single conditional statement.

    Raises:
      AppError(REMOVE_MEMBER_FAILED, 403) — nothing deleted: the requester is
        not the admin, or the user is not a member (deliberately not told apart)
    """
    admin_owns_group = exists().where(
        Group.id == group_id,
        Group.admin == requester_id,
    )
    stmt = (
        delete(GroupMember)
        .where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
            admin_owns_group,
        )
        .returning(GroupMember.user_id)
    )
    removed = session.execute(stmt).scalars().all()

    if not removed:
        logger.warning(
            "Member removal affected no rows (group=%s, member=%s, requester=%s)",
            group_id, user_id, requester_id,
        )
        raise AppError(
            ErrorCode.REMOVE_MEMBER_FAILED,
            "Operation failed: you are not the group admin or the user is not a member.",
            403,
        )
    session.flush()


def is_member(group_id: int, user_id: str, session: Session) -> bool:
    """True if (group_id, user_id) has a membership row."""
    return session.execute(
        select(
            exists().where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
    ).scalar_one()


def list_members(group_id: int, session: Session) -> list[dict]:
    """Returns [{user_id, user_name, user_email}] for every member of a group."""
    stmt = (
        select(GroupMember.user_id, User.name, User.email)
        .join(User, User.microsoft_id == GroupMember.user_id)
        .where(GroupMember.group_id == group_id)
    )
    return [
        {"user_id": row.user_id, "user_name": row.name, "user_email": row.email}
        for row in session.execute(stmt).all()
    ]


def get_member(group_id: int, user_id: str, session: Session) -> list[dict]:
    """
    Returns the membership row with its counters as a zero- or one-element
    list. Absence is not an error; clients use it to test membership.
    """
    membership = session.get(GroupMember, (group_id, user_id))
    if membership is None:
        return []
    return [{
        "group_id": membership.group_id,
        "user_id": membership.user_id,
        "contributed_amount": membership.contributed_amount,
        "owed_amount": membership.owed_amount,
        "settled_amount": membership.settled_amount,
    }]


# ── Notices ────────────────────────────────────────────────────────────────

def _contact_row(group_id: int, user_id: str, session: Session):
    """(user email, user name, group name, admin email, admin name) or None."""
    admin_user = aliased(User)
    return session.execute(
        select(
            User.email,
            User.name,
            Group.name.label("group_name"),
            admin_user.email.label("admin_email"),
            admin_user.name.label("admin_name"),
        )
        .select_from(Group)
        .join(admin_user, admin_user.microsoft_id == Group.admin)
        .join(User, User.microsoft_id == user_id)
        .where(Group.id == group_id)
    ).one_or_none()


def member_added_notice(
        group_id: int,
        user_id: str,
        frontend_url: str,
        session: Session,
) -> MemberAddedNotice | None:
    """Builds the welcome notice for a new member; None if contacts are gone."""
    row = _contact_row(group_id, user_id, session)
    if row is None:
        return None
    return MemberAddedNotice(
        user_email=row.email,
        user_name=row.name,
        group_name=row.group_name,
        admin_name=row.admin_name,
        admin_email=row.admin_email,
        group_link=f"{frontend_url.rstrip('/')}/groupHandling/{group_id}",
    )


def member_removed_notice(
        group_id: int,
        user_id: str,
        session: Session,
) -> MemberRemovedNotice | None:
    """
    Builds the removal notice, but only after confirming the membership row
    is really gone. Returns None otherwise.
    """
    if is_member(group_id, user_id, session):
        return None
    row = _contact_row(group_id, user_id, session)
    if row is None:
        return None
    return MemberRemovedNotice(
        user_email=row.email,
        user_name=row.name,
        group_name=row.group_name,
        admin_name=row.admin_name,
        admin_email=row.admin_email,
    )
