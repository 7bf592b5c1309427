from typing import List, Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.subscription import Subscription


def find_by_paddle_id(db: Session, paddle_subscription_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(
        Subscription.paddle_subscription_id == paddle_subscription_id
    ).first()


def find_active_for_user(db: Session, user_id: int) -> Optional[Subscription]:
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(("active", "trialing")),
    ).order_by(Subscription.id.desc()).first()


def upsert_subscription(
    db: Session,
    user_id: int,
    paddle_subscription_id: str,
    paddle_customer_id: str,
    status: str,
    stage: Optional[str],
    next_bill_date: Optional[str],
    is_scheduled_to_cancel: bool = False,
) -> Subscription:
    subscription = find_by_paddle_id(db, paddle_subscription_id)
    if subscription is None:
        subscription = Subscription(
            user_id=user_id,
            paddle_subscription_id=paddle_subscription_id,
            paddle_customer_id=paddle_customer_id,
            status=status,
        )
        db.add(subscription)

    subscription.status = status
    subscription.stage = stage
    subscription.next_bill_date = next_bill_date
    subscription.is_scheduled_to_cancel = is_scheduled_to_cancel
    db.commit()
    db.refresh(subscription)
    return subscription


def list_active(db: Session) -> List[Subscription]:
    return db.query(Subscription).filter(
        Subscription.status.in_(("active", "trialing"))
    ).order_by(Subscription.id).all()
