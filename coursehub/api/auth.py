import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import EmailStr, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel
from coursehub.core.auth import Role, TokenData, create_token, get_current_user, hash_password, verify_password
from coursehub.core.database import get_db
from coursehub.models.orm import Profile, User, UserRole, UserType

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileOut(CamelModel):
    id: int
    user_id: int
    full_name: Optional[str] = None
    email: str
    user_type: Optional[str] = None
    avatar_url: Optional[str] = None


class UserOut(CamelModel):
    id: int
    email: str
    profile: Optional[ProfileOut] = None
    roles: List[str]


class AuthResponse(CamelModel):
    user: UserOut
    token: str


class Register(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=1)
    user_type: UserType = UserType.EMPLOYEE


class Login(CamelModel):
    email: EmailStr
    password: str


def user_out(user: User) -> UserOut:
    profile = ProfileOut.model_validate(user.profile) if user.profile else None
    return UserOut(id=user.id, email=user.email, profile=profile, roles=user.role_names)


def issue_token(user: User) -> str:
    return create_token(user.id, user.email, user.role_names)


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: Register, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.scalar(select(User.id).where(User.email == email)):
        raise HTTPException(400, "Email already registered")
    user = User(email=email, password_hash=hash_password(payload.password))
    user.profile = Profile(full_name=payload.full_name, email=email, user_type=payload.user_type.value)
    user.roles = [UserRole(role=Role.USER.value)]
    db.add(user)
    db.commit()
    logger.info(f"Registered user {user.id}")
    return AuthResponse(user=user_out(user), token=issue_token(user))


@router.post("/login", response_model=AuthResponse)
def login(payload: Login, db: Session = Depends(get_db)):
    user = db.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")
    return AuthResponse(user=user_out(user), token=issue_token(user))


@router.get("/me", response_model=UserOut)
def me(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    user = db.get(User, current.user_id)
    if not user:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "User not found")
    return user_out(user)
