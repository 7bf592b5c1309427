from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from lightfriend.db.base import Base

OUTBOX_PENDING = "pending"
OUTBOX_DONE = "done"
OUTBOX_FAILED = "failed"


class OutboxJob(Base):
    """
    Side effect queued for the background worker (recharges, notifications, syncs).

    Jobs are retried with backoff until max_attempts, then left in the
    "failed" state with last_error for an admin to inspect.
    """
    __tablename__ = "outbox_jobs"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, index=True)
    payload = Column(Text, nullable=False, default="{}")  # JSON
    dedupe_key = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default=OUTBOX_PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    last_error = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_outbox_status_next", "status", "next_attempt_at"),
    )
