import enum
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.orm import Session

from coursehub.core.config import settings
from coursehub.core.database import get_db
from coursehub.models.orm import User


class Role(str, enum.Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    LEADER = "leader"
    USER = "user"


ROLE_VALUES = {r.value for r in Role}


class TokenData(BaseModel):
    sub: str
    email: str = ""
    roles: List[Role] = []

    @property
    def user_id(self) -> int:
        return int(self.sub)

    def has_any(self, *roles: Role) -> bool:
        return bool(set(self.roles).intersection(roles))


bearer = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(user_id: int, email: str, roles: List[str], ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(user_id),
        "email": email,
        "roles": [Role(r).value for r in roles],
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl)).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def decode_token(token: str) -> TokenData:
    payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
    roles = [Role(r) for r in payload.get("roles", []) if r in ROLE_VALUES]
    return TokenData(sub=str(int(payload["sub"])), email=payload.get("email", ""), roles=roles)


def load_identity(db: Session, claims: TokenData) -> Optional[TokenData]:
    """Current email and roles of the token's user, or None once the account is gone.

    Role grants and revocations apply to tokens that were already issued.
    """
    user = db.get(User, claims.user_id)
    if user is None:
        return None
    roles = [Role(r) for r in user.role_names if r in ROLE_VALUES]
    return TokenData(sub=str(user.id), email=user.email, roles=roles)


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                     db: Session = Depends(get_db)) -> TokenData:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")
    try:
        claims = decode_token(creds.credentials)
    except (jwt.PyJWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    identity = load_identity(db, claims)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return identity


def get_optional_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                      db: Session = Depends(get_db)) -> Optional[TokenData]:
    if creds is None:
        return None
    try:
        claims = decode_token(creds.credentials)
    except (jwt.PyJWTError, KeyError, ValueError):
        return None
    return load_identity(db, claims)


def require_roles(*required: Role):
    def checker(user: TokenData = Depends(get_current_user)) -> TokenData:
        if not user.has_any(*required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
    return checker


admin_only = require_roles(Role.ADMIN)
admin_or_editor = require_roles(Role.ADMIN, Role.EDITOR)


def can_author(user: Optional[TokenData]) -> bool:
    """Admins and editors see answer keys and may change quiz content."""
    return user is not None and user.has_any(Role.ADMIN, Role.EDITOR)
