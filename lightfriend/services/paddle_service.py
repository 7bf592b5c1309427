"""
Paddle subscriptions: webhook verification, subscription mirroring and
usage-based item sync.
"""
import hashlib
import hmac
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.logging_config import sanitize_log_data
from lightfriend.core.errors import ConfigurationError, ExternalServiceError, WebhookSignatureError
from lightfriend.core.signatures import digests_match
from lightfriend.repositories import subscription_repository, usage_repository, user_repository
from lightfriend.services import outbox_service
from lightfriend.services.outbox_service import JobKind

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("active", "trialing")
SUBSCRIPTION_EVENTS = (
    "subscription.created",
    "subscription.updated",
    "subscription.activated",
    "subscription.canceled",
    "subscription.paused",
    "subscription.resumed",
    "subscription.past_due",
)


def parse_signature_header(header: str) -> Tuple[str, str]:
    """Split 'ts=...;h1=...' into (timestamp, h1)."""
    timestamp = h1 = ""
    for part in header.split(";"):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        if key.strip() == "ts":
            timestamp = value.strip()
        elif key.strip() == "h1":
            h1 = value.strip()
    return timestamp, h1


def verify_signature(body: bytes, header: Optional[str], secret: Optional[str] = None) -> None:
    """
    Verify the Paddle-Signature header: HMAC-SHA256 over "ts:body".

    Raises:
        WebhookSignatureError: Header missing, malformed or not matching
    """
    secret = secret or config.PADDLE_WEBHOOK_SECRET
    if not secret:
        raise ConfigurationError("PADDLE_WEBHOOK_SECRET not configured")
    if not header:
        raise WebhookSignatureError("Missing Paddle-Signature header")
    timestamp, h1 = parse_signature_header(header)
    if not timestamp or not h1:
        raise WebhookSignatureError("Malformed Paddle-Signature header")

    signed = timestamp.encode("utf-8") + b":" + body
    expected = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    if not digests_match(expected, h1):
        raise WebhookSignatureError("Invalid signature")


def tier_for_items(items: List[Dict[str, Any]]) -> Optional[str]:
    price_ids = {((item.get("price") or {}).get("id")) for item in items}
    if config.PADDLE_TIER_2_PRICE_ID and config.PADDLE_TIER_2_PRICE_ID in price_ids:
        return "tier 2"
    if config.PADDLE_TIER_1_PRICE_ID and config.PADDLE_TIER_1_PRICE_ID in price_ids:
        return "tier 1"
    return None


def _resolve_user_id(db: Session, data: Dict[str, Any]) -> Optional[int]:
    custom = data.get("custom_data") or {}
    if custom.get("user_id") is not None:
        try:
            return int(custom["user_id"])
        except (TypeError, ValueError):
            logger.warning(f"Unparsable user_id in Paddle custom_data: {custom.get('user_id')}")
            return None
    existing = subscription_repository.find_by_paddle_id(db, data.get("id", ""))
    return existing.user_id if existing else None


def handle_subscription_event(db: Session, payload: Dict[str, Any]) -> str:
    """
    Mirror a Paddle subscription event into the subscriptions table and the
    user's tier.

    Returns:
        "success" when applied, "unhandled_event" for other event types
    """
    event_type = payload.get("event_type", "")
    if event_type not in SUBSCRIPTION_EVENTS:
        logger.warning(f"Unhandled Paddle webhook event type: {event_type}")
        logger.debug(f"Unhandled Paddle payload: {sanitize_log_data(payload)}")
        return "unhandled_event"

    data = payload.get("data") or {}
    user_id = _resolve_user_id(db, data)
    if user_id is None or user_repository.find_by_id(db, user_id) is None:
        raise LookupError(f"No user for Paddle subscription {data.get('id')}")

    status = data.get("status", "")
    tier = tier_for_items(data.get("items") or [])
    scheduled_change = data.get("scheduled_change") or {}

    subscription_repository.upsert_subscription(
        db,
        user_id=user_id,
        paddle_subscription_id=data["id"],
        paddle_customer_id=data.get("customer_id", ""),
        status=status,
        stage=tier,
        next_bill_date=data.get("next_billed_at"),
        is_scheduled_to_cancel=scheduled_change.get("action") == "cancel",
    )

    if status in ACTIVE_STATUSES:
        user_repository.set_subscription_tier(db, user_id, tier)
    else:
        user_repository.set_subscription_tier(db, user_id, None)

    logger.info(f"Paddle {event_type}: user_id={user_id}, status={status}, tier={tier}")
    return "success"


async def sync_subscription_items(
    subscription_id: str,
    iq_quantity: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Set the metered IQ usage item on a subscription, billed next period."""
    if not config.PADDLE_API_KEY:
        raise ConfigurationError("PADDLE_API_KEY not configured")
    if not config.PADDLE_ZERO_SUB_PRICE_ID or not config.PADDLE_IQ_USAGE_PRICE_ID:
        raise ConfigurationError("ZERO_SUB_PRICE_ID and IQ_USAGE_PRICE_ID must be set")

    items = [{"price_id": config.PADDLE_ZERO_SUB_PRICE_ID, "quantity": 1}]
    if iq_quantity > 0:
        items.append({"price_id": config.PADDLE_IQ_USAGE_PRICE_ID, "quantity": iq_quantity})

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        response = await client.patch(
            f"{config.PADDLE_API_URL.rstrip('/')}/subscriptions/{subscription_id}",
            headers={"Authorization": f"Bearer {config.PADDLE_API_KEY}"},
            json={"items": items, "proration_billing_mode": "prorated_next_billing_period"},
        )
    if response.is_error:
        raise ExternalServiceError("paddle", f"Paddle API error: {response.text[:300]}", response.status_code)
    logger.info(f"Synced Paddle subscription {subscription_id} with IQ quantity {iq_quantity}")


def queue_usage_sync(db: Session, user_id: int, days: int = 30) -> Optional[int]:
    """
    Queue a usage sync for the user's active subscription.

    Returns:
        The outbox job id, or None when the user has no active subscription
    """
    subscription = subscription_repository.find_active_for_user(db, user_id)
    if subscription is None:
        return None
    since = datetime.utcnow() - timedelta(days=days)
    totals = usage_repository.get_credit_totals(db, user_id, since)
    iq_quantity = int(round(sum(totals.values())))
    job = outbox_service.enqueue(
        db,
        JobKind.PADDLE_SYNC,
        {"subscription_id": subscription.paddle_subscription_id, "iq_quantity": iq_quantity},
        dedupe_key=f"paddle_sync:{subscription.paddle_subscription_id}",
    )
    return job.id
