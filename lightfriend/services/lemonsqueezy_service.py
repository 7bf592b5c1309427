"""
Lemon Squeezy checkout for buying IQ credits, and its order webhook.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.logging_config import sanitize_log_data
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.core.signatures import verify_hex_hmac_sha256
from lightfriend.repositories import user_repository

logger = logging.getLogger(__name__)

CHECKOUTS_URL = "https://api.lemonsqueezy.com/v1/checkouts"
JSON_API = "application/vnd.api+json"


def price_in_cents(iq_amount: int) -> int:
    """60 IQ cost 0.20 EUR."""
    return int((iq_amount / 60.0) * 0.2 * 100.0)


def build_checkout_request(user_id: int, iq_amount: int) -> Dict[str, Any]:
    if not config.LEMON_SQUEEZY_STORE_ID or not config.LEMON_SQUEEZY_VARIANT_ID:
        raise ConfigurationError("LEMON_SQUEEZY_STORE_ID and LEMON_SQUEEZY_VARIANT_ID must be set")
    return {
        "data": {
            "type": "checkouts",
            "attributes": {
                "custom_price": price_in_cents(iq_amount),
                "checkout_data": {
                    "custom": {
                        "user_id": str(user_id),
                        "iq_amount": str(iq_amount),
                    }
                },
                "checkout_options": {"embed": True, "media": True, "logo": True},
            },
            "relationships": {
                "store": {"data": {"type": "stores", "id": config.LEMON_SQUEEZY_STORE_ID}},
                "variant": {"data": {"type": "variants", "id": config.LEMON_SQUEEZY_VARIANT_ID}},
            },
        }
    }


async def create_checkout(
    user_id: int,
    iq_amount: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Create a hosted checkout for an IQ purchase.

    Returns:
        The checkout URL to redirect the user to
    """
    if not config.LEMON_SQUEEZY_API_KEY:
        raise ConfigurationError("LEMON_SQUEEZY_API_KEY not configured")

    body = build_checkout_request(user_id, iq_amount)
    headers = {
        "Authorization": f"Bearer {config.LEMON_SQUEEZY_API_KEY}",
        "Accept": JSON_API,
        "Content-Type": JSON_API,
    }
    logger.info(f"Creating checkout: user_id={user_id}, iq_amount={iq_amount}, cents={price_in_cents(iq_amount)}")
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            response = await client.post(CHECKOUTS_URL, json=body, headers=headers)
    except httpx.HTTPError as e:
        raise ExternalServiceError("lemonsqueezy", f"Failed to connect to payment service: {e}") from e

    if response.is_error:
        logger.error(f"Lemon Squeezy API error {response.status_code}: {response.text[:500]}")
        raise ExternalServiceError("lemonsqueezy", "Payment service error", status_code=response.status_code)

    try:
        return response.json()["data"]["attributes"]["url"]
    except (KeyError, TypeError, ValueError) as e:
        raise ExternalServiceError("lemonsqueezy", f"Failed to parse response: {e}") from e


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> None:
    """
    Check the x-signature header: hex HMAC-SHA256 of the raw body.

    Raises:
        WebhookSignatureError: Missing or mismatching signature
    """
    secret = secret or config.LEMON_SQUEEZY_WEBHOOK_SECRET
    if not secret:
        raise ConfigurationError("LEMON_SQUEEZY_WEBHOOK_SECRET not configured")
    verify_hex_hmac_sha256(body, signature, secret)


def apply_order_created(db: Session, payload: Dict[str, Any]) -> Optional[int]:
    """
    Credit the purchased IQ for a paid order_created event.

    Returns:
        The credited amount, or None when the event needs no action

    Raises:
        ValueError: custom_data is missing or malformed
        LookupError: The user in custom_data does not exist
    """
    meta = payload.get("meta") or {}
    if meta.get("event_name") != "order_created":
        logger.info(f"Ignoring Lemon Squeezy event {meta.get('event_name')}")
        logger.debug(f"Ignored Lemon Squeezy payload: {sanitize_log_data(payload)}")
        return None

    status = ((payload.get("data") or {}).get("attributes") or {}).get("status")
    if status != "paid":
        logger.info(f"Ignoring order with status {status}")
        return None

    custom = meta.get("custom_data") or {}
    try:
        user_id = int(custom["user_id"])
        iq_amount = int(custom["iq_amount"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError("Invalid custom_data in order") from e

    if user_repository.find_by_id(db, user_id) is None:
        raise LookupError(f"User {user_id} not found")

    user_repository.increase_credits(db, user_id, iq_amount)
    logger.info(f"Order paid, credited IQ: user_id={user_id}, iq_amount={iq_amount}")
    return iq_amount
