import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import get_db
from lightfriend.core.security import create_access_token, hash_password, verify_password
from lightfriend.repositories import user_repository
from lightfriend.schemas.auth import LoginRequest, RegisterRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


# ✅ USER REGISTRATION
@router.post("/register")
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    if user_repository.email_or_phone_taken(db, payload.email, payload.phone_number):
        raise HTTPException(status_code=400, detail="Email or phone number already registered")

    user = user_repository.create_user(
        db,
        email=payload.email,
        password_hash=hash_password(payload.password),
        phone_number=payload.phone_number,
    )

    return {
        "message": "User created successfully",
        "user_id": user.id
    }


# ✅ LOGIN -> JWT
@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = user_repository.find_by_email(db, payload.email)

    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"sub": str(user.id)})
    logger.info(f"User logged in: user_id={user.id}")

    return TokenResponse(token=token)
