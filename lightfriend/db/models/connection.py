from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from lightfriend.db.base import Base


class UnipileConnection(Base):
    __tablename__ = "unipile_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String, nullable=True)
    account_id = Column(String, unique=True, nullable=False)
    status = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CalendarConnection(Base):
    __tablename__ = "google_calendar"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    encrypted_access_token = Column(Text, nullable=False)
    encrypted_refresh_token = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="active")
    description = Column(String, nullable=True)
    expires_in = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ImapConnection(Base):
    __tablename__ = "imap_connection"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    method = Column(String, nullable=False, default="gmail")
    description = Column(String, nullable=False)  # the mailbox address
    encrypted_password = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="active")
    imap_server = Column(String, nullable=True)
    imap_port = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
