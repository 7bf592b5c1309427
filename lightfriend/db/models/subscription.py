from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from lightfriend.db.base import Base


class Subscription(Base):
    """Paddle subscription mirrored from webhooks."""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    paddle_subscription_id = Column(String, unique=True, nullable=False)
    paddle_customer_id = Column(String, nullable=False)
    stage = Column(String, nullable=True)  # tier the subscription grants
    status = Column(String, nullable=False)  # active | trialing | past_due | paused | canceled
    next_bill_date = Column(String, nullable=True)
    is_scheduled_to_cancel = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
