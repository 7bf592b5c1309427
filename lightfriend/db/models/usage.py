from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from lightfriend.db.base import Base


class UsageLog(Base):
    """
    One billed (or attempted) activity: an SMS reply, a voice call, a notification.
    """
    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sid = Column(String, nullable=True)  # provider-side id (conversation id, message sid)
    activity_type = Column(String, nullable=False)  # "sms" | "call" | "notification"
    credits = Column(Float, nullable=True)
    success = Column(Boolean, nullable=True)
    reason = Column(String, nullable=True)
    status = Column(String, nullable=True)
    time_consumed = Column(Integer, nullable=True)  # seconds, for calls
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index("idx_usage_user_created", "user_id", "created_at"),
    )
