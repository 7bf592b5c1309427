"""
Billing service for Stripe automatic recharges.

Charges the card saved on the user's Stripe customer off-session and tops
up the credits balance with the charged amount.
"""
import logging
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.repositories import user_repository

logger = logging.getLogger(__name__)

CURRENCY = "eur"


class RechargeError(Exception):
    """Automatic recharge could not be completed."""


def _configure_stripe() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise RechargeError("Stripe not configured - STRIPE_SECRET_KEY required")
    stripe.api_key = config.STRIPE_SECRET_KEY


def automatic_charge(db: Session, user_id: int, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Charge the user's saved payment method and add the amount to credits.

    Args:
        db: Database session
        user_id: User to recharge
        idempotency_key: Sent to Stripe so a retried job reuses the first
            PaymentIntent instead of charging again

    Returns:
        Dict with payment_intent_id and the credited amount

    Raises:
        RechargeError: Missing user, payment details, or a non-succeeded intent
        stripe.error.StripeError: Propagated so the caller can retry
    """
    user = user_repository.find_by_id(db, user_id)
    if user is None:
        raise RechargeError(f"User {user_id} not found")
    if not user.charge_when_under:
        logger.info(f"Automatic charge skipped, disabled by user: user_id={user_id}")
        return {"payment_intent_id": None, "amount": 0.0}
    if not user_repository.is_credits_under_threshold(db, user_id):
        logger.info(f"Automatic charge skipped, balance above threshold: user_id={user_id}")
        return {"payment_intent_id": None, "amount": 0.0}
    if not user.stripe_customer_id or not user.stripe_payment_method_id:
        raise RechargeError(f"User {user_id} has no saved Stripe payment method")

    _configure_stripe()
    amount = user.charge_back_amount or config.DEFAULT_CHARGE_BACK_AMOUNT

    options = {"idempotency_key": idempotency_key} if idempotency_key else {}
    intent = stripe.PaymentIntent.create(
        amount=int(round(amount * 100)),
        currency=CURRENCY,
        customer=user.stripe_customer_id,
        payment_method=user.stripe_payment_method_id,
        off_session=True,
        confirm=True,
        metadata={"user_id": str(user_id), "reason": "automatic_recharge"},
        **options,
    )

    if intent.status != "succeeded":
        raise RechargeError(f"PaymentIntent {intent.id} ended in status {intent.status}")

    user_repository.increase_credits(db, user_id, amount)
    logger.info(f"Automatic charge succeeded: user_id={user_id}, amount={amount:.2f}, intent={intent.id}")
    return {"payment_intent_id": intent.id, "amount": amount}
