"""
Usage tracking endpoint.

Lists the caller's usage logs since a point in time with per-activity totals.
"""
import logging
import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import get_current_user_obj, get_db
from lightfriend.db.models.user import User
from lightfriend.repositories import usage_repository
from lightfriend.schemas.usage import UsageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Usage"])

DEFAULT_WINDOW_SECONDS = 30 * 24 * 3600


@router.get("/usage", response_model=UsageResponse)
def get_usage(
    since: Optional[int] = Query(None, ge=0, description="Unix seconds, defaults to 30 days ago"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """
    Get usage for the authenticated user.

    Returns:
    - since: window start in unix seconds
    - credits / credits_left: current balances
    - totals: credits spent per activity type
    - logs: the individual usage entries, newest first
    """
    if since is None:
        since = int(time.time()) - DEFAULT_WINDOW_SECONDS
    since_dt = datetime.utcfromtimestamp(since)

    logs = usage_repository.get_usage_since(db, user.id, since_dt)
    totals = usage_repository.get_credit_totals(db, user.id, since_dt)

    return UsageResponse(
        since=since,
        credits=user.credits,
        credits_left=user.credits_left,
        totals=totals,
        logs=logs,
    )
