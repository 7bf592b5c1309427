from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from lightfriend.db.models.usage import UsageLog


def log_usage(
    db: Session,
    user_id: int,
    activity_type: str,
    credits: Optional[float] = None,
    success: Optional[bool] = None,
    reason: Optional[str] = None,
    sid: Optional[str] = None,
    status: Optional[str] = None,
    time_consumed: Optional[int] = None,
) -> UsageLog:
    entry = UsageLog(
        user_id=user_id,
        activity_type=activity_type,
        credits=credits,
        success=success,
        reason=reason,
        sid=sid,
        status=status,
        time_consumed=time_consumed,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_usage_since(db: Session, user_id: int, since: Optional[datetime] = None) -> List[UsageLog]:
    query = db.query(UsageLog).filter(UsageLog.user_id == user_id)
    if since is not None:
        query = query.filter(UsageLog.created_at >= since)
    return query.order_by(UsageLog.created_at.desc()).all()


def get_credit_totals(db: Session, user_id: int, since: Optional[datetime] = None) -> dict:
    """Sum of credits per activity type."""
    query = db.query(
        UsageLog.activity_type,
        func.coalesce(func.sum(UsageLog.credits), 0.0).label("total"),
    ).filter(UsageLog.user_id == user_id)
    if since is not None:
        query = query.filter(UsageLog.created_at >= since)
    return {activity: float(total) for activity, total in query.group_by(UsageLog.activity_type).all()}
