from sqlalchemy import Column, Integer, String, ForeignKey, Text
from lightfriend.db.base import Base

BRIDGE_CONNECTING = "connecting"
BRIDGE_CONNECTED = "connected"
BRIDGE_ERROR = "error"


class Bridge(Base):
    """Matrix bridge linking a user's third-party messenger account."""
    __tablename__ = "bridges"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    bridge_type = Column(String, nullable=False)  # "whatsapp"
    status = Column(String, nullable=False, default=BRIDGE_CONNECTING)
    room_id = Column(String, nullable=True)  # management room shared with the bridge bot
    data = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=True)  # unix seconds
    last_seen_online = Column(Integer, nullable=True)
