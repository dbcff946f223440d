import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.auth import ProfileOut, UserOut, user_out
from coursehub.api.base import CamelModel, Message
from coursehub.core.auth import Role, TokenData, admin_only, get_current_user
from coursehub.core.database import get_db
from coursehub.models.orm import Profile, User, UserRole

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileUpdate(CamelModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    avatar_url: Optional[str] = None


class RolesUpdate(CamelModel):
    roles: List[Role] = Field(min_length=1)


def _profile_or_404(db: Session, user_id: int) -> Profile:
    profile = db.scalar(select(Profile).where(Profile.user_id == user_id))
    if not profile:
        raise HTTPException(404, "Profile not found")
    return profile


@router.get("/me", response_model=ProfileOut)
def my_profile(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return _profile_or_404(db, current.user_id)


@router.put("/me", response_model=ProfileOut)
def update_my_profile(payload: ProfileUpdate, current: TokenData = Depends(get_current_user),
                      db: Session = Depends(get_db)):
    profile = _profile_or_404(db, current.user_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    db.commit()
    return profile


@router.get("", response_model=List[UserOut], dependencies=[Depends(admin_only)])
def list_users(db: Session = Depends(get_db)):
    users = db.scalars(select(User).order_by(User.created_at.desc(), User.id.desc())).all()
    return [user_out(u) for u in users]


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: int, current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    if current.user_id != user_id and not current.has_any(Role.ADMIN):
        raise HTTPException(403, "Access denied")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return user_out(user)


@router.put("/{user_id}/roles", response_model=UserOut)
def set_roles(user_id: int, payload: RolesUpdate, current: TokenData = Depends(admin_only),
              db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    wanted = {r.value for r in payload.roles}
    user.roles = [r for r in user.roles if r.role in wanted] + [
        UserRole(role=r) for r in sorted(wanted - set(user.role_names))
    ]
    db.commit()
    logger.info(f"Admin {current.sub} set roles of user {user_id} to {sorted(wanted)}")
    return user_out(user)


@router.delete("/{user_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_user(user_id: int, db: Session = Depends(get_db)):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    db.delete(user)
    db.commit()
    return Message(message="User deleted successfully")
