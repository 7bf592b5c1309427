"""
Usage service for metering messages, calls and notifications.

Costs come from configured per-event rates. Balances live on the user row:
credits_left is the monthly quota and is spent first, credits is the top-up
balance. Deduction happens in one conditional UPDATE so concurrent requests
can never overdraw a balance.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.db.models.user import User
from lightfriend.repositories import user_repository, usage_repository
from lightfriend.services import outbox_service
from lightfriend.services.outbox_service import JobKind

logger = logging.getLogger(__name__)

EVENT_MESSAGE = "message"
EVENT_VOICE = "voice"
EVENT_NOTIFICATION = "notification"
EVENT_DIGEST = "digest"

TIER_2 = "tier 2"
NOTIFY_INTERVAL_SECONDS = 24 * 3600

INSUFFICIENT_CREDITS_MESSAGE = (
    "Insufficient credits. You have used all your monthly quota "
    "and don't have enough extra credits."
)
DEPLETED_NOTICE = (
    "Your credits and monthly quota have been depleted. "
    "Please recharge your credits to continue using the service."
)


class InsufficientCreditsError(Exception):
    def __init__(self, message: str = INSUFFICIENT_CREDITS_MESSAGE):
        super().__init__(message)


@dataclass(frozen=True)
class Rates:
    message: float
    voice_second: float
    notification: float


def is_us_user(user: User) -> bool:
    if user.phone_number_country:
        return user.phone_number_country.upper() == "US"
    return (user.phone_number or "").startswith("+1")


def get_rates(user: User) -> Rates:
    if is_us_user(user):
        return Rates(config.MESSAGE_COST_US, config.VOICE_SECOND_COST_US, config.NOTIFICATION_COST_US)
    return Rates(config.MESSAGE_COST, config.VOICE_SECOND_COST, config.NOTIFICATION_COST)


def is_free_event(user: User, event_type: str) -> bool:
    """Discounted users and self-hosted deployments are not billed."""
    if config.ENVIRONMENT == "self_hosted":
        return True
    if user.discount_tier == "full":
        return True
    if user.discount_tier == "msg" and event_type == EVENT_MESSAGE:
        return True
    if user.discount_tier == "voice" and event_type != EVENT_MESSAGE:
        return True
    return False


def compute_cost(user: User, event_type: str, amount: Optional[float] = None) -> float:
    """
    Price one event for a user.

    Args:
        user: The billed user (decides the rate table)
        event_type: message | voice | notification | digest
        amount: Seconds for voice, number of messages for digest

    Raises:
        ValueError: For an unknown event type
    """
    rates = get_rates(user)
    if event_type == EVENT_MESSAGE:
        return rates.message
    if event_type == EVENT_VOICE:
        return (amount or 0) * rates.voice_second
    if event_type == EVENT_NOTIFICATION:
        return rates.notification
    if event_type == EVENT_DIGEST:
        return (amount or 0) * rates.message
    raise ValueError("Invalid event type")


def check_user_credits(
    db: Session,
    user: User,
    event_type: str,
    amount: Optional[float] = None,
) -> None:
    """
    Make sure the user can pay for an event before doing the work.

    When neither balance covers the cost the user gets at most one SMS per
    24 hours telling them so, and InsufficientCreditsError is raised.
    """
    if is_free_event(user, event_type):
        return

    required = compute_cost(user, event_type, amount)
    if user.credits_left < required and user.credits < required:
        now = int(time.time())
        last = user.last_credits_notification
        if event_type != EVENT_DIGEST and (last is None or now - last >= NOTIFY_INTERVAL_SECONDS):
            user_repository.update_last_credits_notification(db, user.id, now)
            outbox_service.enqueue(
                db,
                JobKind.SEND_SMS,
                {"user_id": user.id, "body": DEPLETED_NOTICE},
                dedupe_key=f"credits_depleted:{user.id}",
            )
        logger.info(f"Insufficient credits: user_id={user.id}, event={event_type}, required={required:.4f}")
        raise InsufficientCreditsError()

    check_threshold(db, user.id)


def deduct_user_credits(
    db: Session,
    user_id: int,
    event_type: str,
    amount: Optional[float] = None,
) -> float:
    """
    Charge an event against the user's balances.

    Non-subscribers spend credits_left first and the remainder from credits.
    Tier 2 subscribers always pay from credits. Both paths are a single
    UPDATE guarded by the available balance.

    Returns:
        The cost deducted (0.0 for free events)

    Raises:
        LookupError: Unknown user
        InsufficientCreditsError: The guard rejected the update
    """
    user = user_repository.find_by_id(db, user_id)
    if user is None:
        raise LookupError("User not found")
    if is_free_event(user, event_type):
        return 0.0

    cost = compute_cost(user, event_type, amount)
    if cost <= 0:
        return 0.0

    if user.sub_tier == TIER_2:
        stmt = (
            update(User)
            .where(User.id == user_id, User.credits >= cost)
            .values(credits=User.credits - cost)
        )
    else:
        quota = case((User.credits_left > 0, User.credits_left), else_=0.0)
        covered_by_quota = User.credits_left >= cost
        stmt = (
            update(User)
            .where(User.id == user_id, quota + User.credits >= cost)
            .values(
                credits_left=case((covered_by_quota, User.credits_left - cost), else_=0.0),
                credits=case((covered_by_quota, User.credits), else_=User.credits - (cost - quota)),
            )
        )

    result = db.execute(stmt.execution_options(synchronize_session=False))
    db.commit()
    if result.rowcount == 0:
        logger.warning(f"Credit deduction rejected: user_id={user_id}, event={event_type}, cost={cost:.4f}")
        raise InsufficientCreditsError()

    logger.info(f"Credits deducted: user_id={user_id}, event={event_type}, cost={cost:.4f}")
    return cost


def check_threshold(db: Session, user_id: int) -> bool:
    """
    Queue an automatic recharge when the balance dropped under the user's threshold.

    Returns:
        True if a recharge job is pending for the user
    """
    user = user_repository.find_by_id(db, user_id)
    if user is None or not user.charge_when_under:
        return False
    if not user_repository.is_credits_under_threshold(db, user_id):
        return False

    outbox_service.enqueue(
        db,
        JobKind.AUTO_RECHARGE,
        {"user_id": user_id},
        dedupe_key=f"auto_recharge:{user_id}",
    )
    logger.info(f"Credits under threshold, automatic recharge queued: user_id={user_id}")
    return True


def log_usage(
    db: Session,
    user_id: int,
    activity_type: str,
    credits: Optional[float],
    success: Optional[bool],
    reason: Optional[str] = None,
    sid: Optional[str] = None,
    time_consumed: Optional[int] = None,
):
    return usage_repository.log_usage(
        db,
        user_id=user_id,
        activity_type=activity_type,
        credits=credits,
        success=success,
        reason=reason,
        sid=sid,
        time_consumed=time_consumed,
    )
