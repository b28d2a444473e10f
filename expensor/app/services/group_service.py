"""
services/group_service.py — Group lifecycle and admin resolution.

Authorization rules:
  - Creating a group: any authenticated user; the creator becomes creator,
    admin and first member.
  - Reading group data: any authenticated user.
  - Deleting a group: the current admin only. Memberships, expenses and
    shares go with it through the FK cascades.

get_group_admin() and require_admin() are the admin-check primitives the
membership, expense and share services build on. When called with
`lock=True` the group row is locked FOR SHARE until the transaction ends, so
the admin that was checked is still the admin when the write commits.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from expensor.app.errors import AppError, ErrorCode
from expensor.app.models.group import Group
from expensor.app.models.membership import GroupMember
from expensor.app.models.user import User

logger = logging.getLogger(__name__)


# ── Admin primitives ───────────────────────────────────────────────────────

def get_group_admin(group_id: int, session: Session, lock: bool = False) -> str:
    """
    Returns the admin's user id for a group or raises GROUP_NOT_FOUND (404).

    lock=True takes a FOR SHARE row lock on the group: concurrent readers are
    fine, but the admin column (and the row itself) cannot change until the
    caller's transaction commits or rolls back.
    """
    stmt = select(Group.admin).where(Group.id == group_id)
    if lock:
        stmt = stmt.with_for_update(read=True)

    admin = session.execute(stmt).scalar_one_or_none()
    if admin is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return admin


def require_admin(admin_id: str, requester_id: str, action: str) -> None:
    """Raises FORBIDDEN (403) unless requester_id is the group admin."""
    if requester_id != admin_id:
        logger.warning(
            "Rejected non-admin attempt to %s (requester=%s, admin=%s)",
            action, requester_id, admin_id,
        )
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the group admin may {action}.",
            403,
        )


def _build_group_dict(group: Group) -> dict:
    """Serialises a Group to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "admin": group.admin,
        "created_by": group.created_by,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, requester_id: str, session: Session) -> dict:
    """
    Creates a new group. The requester becomes creator, admin and the first
    member (with zeroed counters).

    Returns: dict with the new group's columns.
    """
    group = Group(name=name, admin=requester_id, created_by=requester_id)
    session.add(group)
    session.flush()  # populate group.id and created_at before the membership

    session.add(GroupMember(group_id=group.id, user_id=requester_id))
    session.flush()
    session.refresh(group)

    return _build_group_dict(group)


def list_groups(user_id: str, session: Session) -> list[dict]:
    """
    Returns every group the user created, administers or belongs to, oldest
    first. DISTINCT because one user can hold all three roles in a group.
    """
    stmt = (
        select(Group)
        .outerjoin(GroupMember, Group.id == GroupMember.group_id)
        .where(
            or_(
                Group.created_by == user_id,
                Group.admin == user_id,
                GroupMember.user_id == user_id,
            )
        )
        .distinct()
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    groups = session.execute(stmt).scalars().all()
    return [_build_group_dict(g) for g in groups]


def get_group(group_id: int, session: Session) -> dict:
    """Returns a group's columns or raises GROUP_NOT_FOUND (404)."""
    return _build_group_dict(_get_group_or_404(group_id, session))


def get_group_admin_info(group_id: int, session: Session) -> dict:
    """Returns {group_id, admin, name} where name is the admin's display name."""
    row = session.execute(
        select(Group.id, Group.admin, User.name)
        .join(User, User.microsoft_id == Group.admin)
        .where(Group.id == group_id)
    ).one_or_none()

    if row is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return {"group_id": row.id, "admin": row.admin, "name": row.name}


def delete_group(group_id: int, requester_id: str, session: Session) -> None:
    """
    Deletes a group. Admin only.

    The group row is locked FOR UPDATE before the admin check, so the row
    that was authorised is the row that gets deleted.

    Raises:
      AppError(GROUP_NOT_FOUND, 404) — group does not exist
      AppError(FORBIDDEN, 403)       — requester is not the admin
    """
    admin = session.execute(
        select(Group.admin).where(Group.id == group_id).with_for_update()
    ).scalar_one_or_none()

    if admin is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    require_admin(admin, requester_id, "delete this group")

    session.execute(delete(Group).where(Group.id == group_id))
    session.flush()
    logger.info("Group %s deleted by %s", group_id, requester_id)
