from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from lightfriend.core.security import decode_access_token
from lightfriend.db.models.user import User
from lightfriend.db.session import SessionLocal
from lightfriend.repositories import user_repository

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    user_id: int
    is_admin: bool


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_auth_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> AuthUser:
    """Decode the bearer token into the calling user."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No authorization token provided")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = user_repository.find_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    return AuthUser(user_id=user.id, is_admin=user.is_admin)


def require_admin(auth_user: AuthUser = Depends(get_auth_user)) -> AuthUser:
    if not auth_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth_user


def get_current_user_obj(
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
) -> User:
    """Get current User object from JWT token."""
    user = user_repository.find_by_id(db, auth_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
