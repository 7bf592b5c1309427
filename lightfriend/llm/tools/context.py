from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.orm import Session

from lightfriend.core.context import AppContext
from lightfriend.db.models.user import User

DeferredAction = Callable[[], Awaitable[None]]


@dataclass
class ToolContext:
    """Everything a tool handler may touch while answering one message."""
    db: Session
    user: User
    app: AppContext
    media_url: Optional[str] = None
    # Work that must wait until the reply has been sent, e.g. a delayed send
    after_reply: List[DeferredAction] = field(default_factory=list)
