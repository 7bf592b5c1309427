"""
Database models module.

Importing this package registers every model with Base.metadata, which
table creation and Alembic autogenerate rely on.
"""
from lightfriend.db.models.user import User, UserSettings
from lightfriend.db.models.subscription import Subscription
from lightfriend.db.models.conversation import Conversation, MessageHistory
from lightfriend.db.models.usage import UsageLog
from lightfriend.db.models.waiting_check import WaitingCheck
from lightfriend.db.models.bridge import Bridge
from lightfriend.db.models.connection import UnipileConnection, CalendarConnection, ImapConnection
from lightfriend.db.models.outbox import OutboxJob

__all__ = [
    "User",
    "UserSettings",
    "Subscription",
    "Conversation",
    "MessageHistory",
    "UsageLog",
    "WaitingCheck",
    "Bridge",
    "UnipileConnection",
    "CalendarConnection",
    "ImapConnection",
    "OutboxJob",
]
