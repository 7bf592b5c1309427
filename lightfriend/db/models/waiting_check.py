from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Text
from lightfriend.db.base import Base


class WaitingCheck(Base):
    """Something the user asked us to watch for in incoming email or chats."""
    __tablename__ = "waiting_checks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    service_type = Column(String, nullable=False)  # "email" | "messaging"
    noti_type = Column(String, nullable=True)  # "sms" | "call"
    due_date = Column(Integer, nullable=True)  # unix seconds
    remove_when_found = Column(Boolean, default=True, nullable=False)
