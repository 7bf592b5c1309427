"""
Admin endpoints: user balances, discounts, verification and the outbox.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import AuthUser, get_db, require_admin
from lightfriend.repositories import user_repository
from lightfriend.schemas.admin import AdminUser, OutboxJobResponse, SetCreditsRequest, SetDiscountRequest
from lightfriend.services import outbox_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _require_user(db: Session, user_id: int) -> None:
    if user_repository.find_by_id(db, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")


@router.get("/users", response_model=List[AdminUser])
def list_users(admin: AuthUser = Depends(require_admin), db: Session = Depends(get_db)):
    return user_repository.list_users(db)


@router.post("/users/{user_id}/credits")
def set_credits(
    user_id: int,
    payload: SetCreditsRequest,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    user_repository.set_credits(db, user_id, payload.credits, payload.credits_left)
    logger.info(f"Admin {admin.user_id} set credits for user {user_id}")
    return {"message": "Credits updated"}


@router.post("/users/{user_id}/discount")
def set_discount(
    user_id: int,
    payload: SetDiscountRequest,
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _require_user(db, user_id)
    user_repository.set_discount_tier(db, user_id, payload.discount_tier)
    logger.info(f"Admin {admin.user_id} set discount {payload.discount_tier} for user {user_id}")
    return {"message": "Discount tier updated"}


@router.post("/users/{user_id}/verify")
def verify_user(user_id: int, admin: AuthUser = Depends(require_admin), db: Session = Depends(get_db)):
    _require_user(db, user_id)
    user_repository.set_verified(db, user_id, True)
    return {"message": "User verified"}


@router.get("/outbox", response_model=List[OutboxJobResponse])
def list_outbox(
    status: Optional[str] = Query(None, description="pending, done or failed"),
    admin: AuthUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return outbox_service.list_jobs(db, status)


@router.post("/outbox/{job_id}/retry", response_model=OutboxJobResponse)
def retry_outbox_job(job_id: int, admin: AuthUser = Depends(require_admin), db: Session = Depends(get_db)):
    job = outbox_service.retry_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Outbox job not found")
    return job
