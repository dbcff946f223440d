import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursehub.api.auth import ProfileOut
from coursehub.api.base import CamelModel, Message
from coursehub.api.certificates import CertificateOut
from coursehub.api.progress import ProgressWithLesson
from coursehub.core.auth import Role, TokenData, admin_only, get_current_user
from coursehub.core.database import get_db
from coursehub.models.orm import Certificate, Group, GroupMember, User, UserProgress, UserQuizAttempt
from coursehub.services import groups as group_service

logger = logging.getLogger(__name__)

router = APIRouter()


class GroupUser(CamelModel):
    id: int
    email: str
    profile: Optional[ProfileOut] = None


class GroupMemberOut(CamelModel):
    id: int
    group_id: int
    user_id: int
    joined_at: datetime
    user: GroupUser


class GroupOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    leader_id: Optional[int] = None
    created_at: datetime
    leader: Optional[GroupUser] = None
    members: List[GroupMemberOut] = []


class MemberProgress(CamelModel):
    user: GroupUser
    completed_lessons: int
    quiz_attempts: int
    progress: List[ProgressWithLesson]
    certificates: List[CertificateOut]


class GroupIn(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    leader_id: Optional[int] = None


class GroupUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    leader_id: Optional[int] = None


class MemberIn(CamelModel):
    user_id: int


def group_or_404(db: Session, group_id: int) -> Group:
    group = db.get(Group, group_id)
    if not group:
        raise HTTPException(404, "Group not found")
    return group


def user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.get("/me", response_model=GroupOut)
def my_group(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    group = group_service.member_group(db, current.user_id)
    if not group:
        raise HTTPException(404, "Not a member of any group")
    return group


@router.get("/led", response_model=GroupOut)
def group_i_lead(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    group = group_service.led_group(db, current.user_id)
    if not group:
        raise HTTPException(404, "Not leading any group")
    return group


@router.get("", response_model=List[GroupOut], dependencies=[Depends(admin_only)])
def list_groups(db: Session = Depends(get_db)):
    return db.scalars(select(Group).order_by(Group.created_at.desc(), Group.id.desc())).all()


@router.get("/{group_id}", response_model=GroupOut)
def get_group(group_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    group = group_or_404(db, group_id)
    allowed = (
        current.has_any(Role.ADMIN)
        or group.leader_id == current.user_id
        or group_service.is_member(db, group.id, current.user_id)
    )
    if not allowed:
        raise HTTPException(403, "Access denied")
    return group


@router.post("", response_model=GroupOut, status_code=201, dependencies=[Depends(admin_only)])
def create_group(payload: GroupIn, db: Session = Depends(get_db)):
    group = Group(name=payload.name, description=payload.description)
    if payload.leader_id is not None:
        group.leader = user_or_404(db, payload.leader_id)
        group_service.grant_leader_role(db, group.leader)
    db.add(group)
    db.commit()
    logger.info(f"Created group {group.id} led by {group.leader_id}")
    return group


@router.put("/{group_id}", response_model=GroupOut, dependencies=[Depends(admin_only)])
def update_group(group_id: int, payload: GroupUpdate, db: Session = Depends(get_db)):
    group = group_or_404(db, group_id)
    changes = payload.model_dump(exclude_unset=True)
    if "leader_id" in changes:
        leader_id = changes.pop("leader_id")
        group.leader = user_or_404(db, leader_id) if leader_id is not None else None
        if group.leader is not None:
            group_service.grant_leader_role(db, group.leader)
    if changes.get("name") is None:
        changes.pop("name", None)
    for key, value in changes.items():
        setattr(group, key, value)
    db.commit()
    return group


@router.delete("/{group_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_group(group_id: int, db: Session = Depends(get_db)):
    db.delete(group_or_404(db, group_id))
    db.commit()
    logger.info(f"Deleted group {group_id}")
    return Message(message="Group deleted successfully")


@router.post("/{group_id}/members", response_model=GroupMemberOut, status_code=201,
             dependencies=[Depends(admin_only)])
def add_member(group_id: int, payload: MemberIn, db: Session = Depends(get_db)):
    group = group_or_404(db, group_id)
    user = user_or_404(db, payload.user_id)
    if group_service.is_member(db, group.id, user.id):
        raise HTTPException(400, "User is already a member")
    member = GroupMember(group_id=group.id, user_id=user.id)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(400, "User is already a member")
    return member


@router.delete("/{group_id}/members/{user_id}", response_model=Message, dependencies=[Depends(admin_only)])
def remove_member(group_id: int, user_id: int, db: Session = Depends(get_db)):
    group = group_or_404(db, group_id)
    member = db.scalar(select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == user_id))
    if member:
        db.delete(member)
        db.commit()
    return Message(message="Member removed successfully")


@router.get("/{group_id}/progress", response_model=List[MemberProgress])
def group_progress(group_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    group = group_or_404(db, group_id)
    if not current.has_any(Role.ADMIN) and group.leader_id != current.user_id:
        raise HTTPException(403, "Access denied")

    report = []
    for member in group.members:
        progress = db.scalars(
            select(UserProgress).where(UserProgress.user_id == member.user_id).order_by(UserProgress.id)
        ).all()
        certificates = db.scalars(
            select(Certificate).where(Certificate.user_id == member.user_id).order_by(Certificate.id)
        ).all()
        attempts = db.scalar(select(func.count(UserQuizAttempt.id)).where(UserQuizAttempt.user_id == member.user_id))
        report.append(MemberProgress(
            user=GroupUser.model_validate(member.user),
            completed_lessons=sum(1 for p in progress if p.completed),
            quiz_attempts=attempts or 0,
            progress=[ProgressWithLesson.model_validate(p) for p in progress],
            certificates=[CertificateOut.model_validate(c) for c in certificates],
        ))
    return report
