"""
Learner groups: a leader follows the progress of the group's members.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.core.auth import Role, TokenData
from coursehub.models.orm import Group, GroupMember, User, UserRole

logger = logging.getLogger(__name__)


def member_group(db: Session, user_id: int) -> Optional[Group]:
    return db.scalar(
        select(Group).join(GroupMember).where(GroupMember.user_id == user_id).order_by(GroupMember.id).limit(1)
    )


def led_group(db: Session, user_id: int) -> Optional[Group]:
    return db.scalar(select(Group).where(Group.leader_id == user_id).order_by(Group.id).limit(1))


def is_member(db: Session, group_id: int, user_id: int) -> bool:
    return db.scalar(
        select(GroupMember.id).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id).limit(1)
    ) is not None


def leads_member(db: Session, leader_id: int, user_id: int) -> bool:
    """True when ``user_id`` belongs to any group led by ``leader_id``."""
    return db.scalar(
        select(GroupMember.id).join(Group)
        .where(Group.leader_id == leader_id, GroupMember.user_id == user_id).limit(1)
    ) is not None


def can_view_member(db: Session, viewer: TokenData, user_id: int) -> bool:
    if viewer.has_any(Role.ADMIN):
        return True
    return viewer.has_any(Role.LEADER) and leads_member(db, viewer.user_id, user_id)


def grant_leader_role(db: Session, user: User) -> None:
    """Give a group's leader the leader role. Does not commit."""
    if Role.LEADER.value not in user.role_names:
        user.roles.append(UserRole(role=Role.LEADER.value))
        logger.info(f"Granted leader role to user {user.id}")
