"""
Application context shared by request handlers, background tasks and
scheduled jobs.

Built once when the app is created and stored on app.state.context.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from fastapi import Request
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.pending_messages import PendingMessageRegistry
from lightfriend.core.phone_numbers import PhoneNumberRegistry
from lightfriend.db.session import SessionLocal
from lightfriend.llm.openai_provider import OpenRouterProvider
from lightfriend.llm.provider import LLMProvider
from lightfriend.services.twilio_service import TwilioMessenger

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    phone_numbers: PhoneNumberRegistry
    messenger: TwilioMessenger
    provider_factory: Callable[[], LLMProvider]
    pending_messages: PendingMessageRegistry = field(default_factory=PendingMessageRegistry)
    session_factory: Callable[[], Session] = SessionLocal
    # Injected into every outbound httpx client; tests use httpx.MockTransport
    http_transport: Optional[httpx.AsyncBaseTransport] = None
    whatsapp_send_delay: float = config.WHATSAPP_SEND_DELAY_SECONDS

    @classmethod
    def from_config(cls) -> "AppContext":
        phone_numbers = PhoneNumberRegistry.from_config()
        return cls(
            phone_numbers=phone_numbers,
            messenger=TwilioMessenger(phone_numbers),
            provider_factory=OpenRouterProvider,
        )


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context built in create_app()."""
    return request.app.state.context
