"""
Inbound SMS processing.

The Twilio webhook answers right away and hands the message to
process_incoming_sms, which runs the agent, replies over the user's
conversation thread and bills the turn only when it succeeded.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from lightfriend.core.context import AppContext
from lightfriend.core.encryption import encrypt_token
from lightfriend.core.errors import ExternalServiceError
from lightfriend.db.models.user import User
from lightfriend.llm.runner import AgentRunner
from lightfriend.llm.tools.context import ToolContext
from lightfriend.repositories import conversation_repository, user_repository
from lightfriend.services import langfuse_service, usage_service
from lightfriend.services.usage_service import EVENT_MESSAGE, InsufficientCreditsError

logger = logging.getLogger(__name__)

CANCEL_WORDS = ("c", "cancel")
CANCELLED_REPLY = "Cancelled, the message will not be sent."
NOTHING_TO_CANCEL_REPLY = "There was nothing to cancel."
SMS_ACTIVITY = "sms"


@dataclass
class SmsOutcome:
    answer: str
    success: bool
    credits_charged: float = 0.0


def is_cancel_command(body: str) -> bool:
    return body.strip().lower() in CANCEL_WORDS


def _save_history(db: Session, user: User, message: str, answer: str) -> None:
    settings = user_repository.get_or_create_settings(db, user.id)
    if settings.save_context == 0:
        return
    conversation_repository.add_history(db, user.id, "user", encrypt_token(message))
    conversation_repository.add_history(db, user.id, "assistant", encrypt_token(answer))


async def _reply(app: AppContext, db: Session, user: User, to_number: str, body: str) -> str:
    conversation = await asyncio.to_thread(app.messenger.ensure_conversation, db, user, to_number)
    return await asyncio.to_thread(
        app.messenger.send_conversation_message, conversation.conversation_sid, to_number, body
    )


async def handle_message(
    app: AppContext,
    db: Session,
    user: User,
    to_number: str,
    body: str,
    media_url: Optional[str] = None,
) -> SmsOutcome:
    """Run one SMS turn for a known user."""
    started = time.monotonic()

    if is_cancel_command(body):
        cancelled = app.pending_messages.cancel(user.id)
        answer = CANCELLED_REPLY if cancelled else NOTHING_TO_CANCEL_REPLY
        await _reply(app, db, user, to_number, answer)
        return SmsOutcome(answer=answer, success=True)

    try:
        usage_service.check_user_credits(db, user, EVENT_MESSAGE)
    except InsufficientCreditsError:
        logger.info(f"Dropping SMS from user {user.id}: insufficient credits")
        return SmsOutcome(answer="", success=False)

    ctx = ToolContext(db=db, user=user, app=app, media_url=media_url)
    result = await AgentRunner(app.provider_factory()).run(ctx, body)

    sid = await _reply(app, db, user, to_number, result.answer)

    charged = 0.0
    if result.success:
        try:
            charged = usage_service.deduct_user_credits(db, user.id, EVENT_MESSAGE)
        except InsufficientCreditsError:
            logger.warning(f"Balance no longer covers the message for user {user.id}")
        usage_service.log_usage(db, user.id, SMS_ACTIVITY, charged, True, "normal sms response", sid=sid)
        usage_service.check_threshold(db, user.id)
        _save_history(db, user, body, result.answer)
    else:
        usage_service.log_usage(db, user.id, SMS_ACTIVITY, 0.0, False, "failed sms response", sid=sid)

    elapsed_ms = int((time.monotonic() - started) * 1000)
    try:
        await langfuse_service.trace_sms_response(
            str(user.id), body, result.answer, sid, elapsed_ms, not result.success,
            transport=app.http_transport,
        )
    except ExternalServiceError as e:
        logger.warning(f"Langfuse trace failed: {e}")

    for action in ctx.after_reply:
        await action()

    return SmsOutcome(answer=result.answer, success=result.success, credits_charged=charged)


async def process_incoming_sms(
    app: AppContext,
    from_number: str,
    to_number: str,
    body: str,
    media_url: Optional[str] = None,
) -> Optional[SmsOutcome]:
    """Background entry point: opens its own session and never raises."""
    db = app.session_factory()
    try:
        user = user_repository.find_by_phone_number(db, from_number)
        if user is None:
            logger.warning("SMS from unknown number dropped")
            return None
        return await handle_message(app, db, user, to_number, body, media_url)
    except Exception as e:
        logger.error(f"SMS processing failed: {e}", exc_info=True)
        return None
    finally:
        db.close()
