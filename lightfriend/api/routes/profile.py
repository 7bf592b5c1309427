"""
Profile endpoints for the authenticated user.
"""
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import AuthUser, get_auth_user, get_current_user_obj, get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.db.models.user import User
from lightfriend.repositories import user_repository
from lightfriend.schemas.profile import NotifyRequest, ProfileResponse, UpdateProfileRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/profile", tags=["Profile"])


@router.get("", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user_obj)):
    return user


@router.post("/update", response_model=ProfileResponse)
def update_profile(
    payload: UpdateProfileRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    app: AppContext = Depends(get_app_context),
):
    """
    Update the fields present in the request.

    Email and phone number must stay unique; the timezone must be a valid
    IANA name and the preferred number one of ours.
    """
    changes = payload.model_dump(exclude_unset=True)

    email = changes.get("email")
    if email and email.lower() != user.email:
        existing = user_repository.find_by_email(db, email)
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="Email already registered")

    phone_number = changes.get("phone_number")
    if phone_number and phone_number != user.phone_number:
        existing = user_repository.find_by_phone_number(db, phone_number)
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="Phone number already registered")
        # A new number has to be verified again
        changes["verified"] = False

    timezone = changes.get("timezone")
    if timezone:
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise HTTPException(status_code=400, detail=f"Unknown timezone: {timezone}")

    preferred = changes.get("preferred_number")
    if preferred and preferred not in app.phone_numbers.all_numbers():
        raise HTTPException(status_code=400, detail="Invalid preferred number")

    updated = user_repository.update_profile(db, user.id, **changes)
    logger.info(f"Profile updated: user_id={user.id}, fields={sorted(changes)}")
    return updated


@router.delete("")
def delete_profile(auth_user: AuthUser = Depends(get_auth_user), db: Session = Depends(get_db)):
    if not user_repository.delete_user(db, auth_user.user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User deleted successfully"}


@router.post("/notify")
def update_notify(
    payload: NotifyRequest,
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    user_repository.set_notify(db, auth_user.user_id, payload.notify)
    return {"message": "Notification preference updated", "notify": payload.notify}
