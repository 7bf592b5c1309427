"""
User persistence helpers.
"""
import logging
import time
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from lightfriend.db.models.user import User, UserSettings

logger = logging.getLogger(__name__)


def find_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()


def find_by_phone_number(db: Session, phone_number: str) -> Optional[User]:
    return db.query(User).filter(User.phone_number == phone_number).first()


def email_or_phone_taken(db: Session, email: str, phone_number: str) -> bool:
    existing = db.query(User.id).filter(
        (User.email == email.lower()) | (User.phone_number == phone_number)
    ).first()
    return existing is not None


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.id).all()


def create_user(
    db: Session,
    email: str,
    password_hash: str,
    phone_number: str,
    credits: float = 0.0,
) -> User:
    user = User(
        email=email.lower(),
        password_hash=password_hash,
        phone_number=phone_number,
        credits=credits,
        credits_left=0.0,
        charge_when_under=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User created: user_id={user.id}")
    return user


def delete_user(db: Session, user_id: int) -> bool:
    user = find_by_id(db, user_id)
    if not user:
        return False
    db.delete(user)
    db.commit()
    logger.info(f"User deleted: user_id={user_id}")
    return True


def increase_credits(db: Session, user_id: int, amount: float) -> None:
    """Add to the top-up balance in a single UPDATE."""
    db.execute(
        update(User).where(User.id == user_id).values(credits=User.credits + amount)
    )
    db.commit()


def set_credits(db: Session, user_id: int, credits: float, credits_left: Optional[float] = None) -> None:
    values = {"credits": credits}
    if credits_left is not None:
        values["credits_left"] = credits_left
    db.execute(update(User).where(User.id == user_id).values(**values))
    db.commit()


def set_subscription_tier(db: Session, user_id: int, tier: Optional[str]) -> None:
    db.execute(update(User).where(User.id == user_id).values(sub_tier=tier))
    db.commit()


def set_discount_tier(db: Session, user_id: int, discount_tier: Optional[str]) -> None:
    db.execute(update(User).where(User.id == user_id).values(discount_tier=discount_tier))
    db.commit()


def update_last_credits_notification(db: Session, user_id: int, timestamp: Optional[int] = None) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(last_credits_notification=timestamp if timestamp is not None else int(time.time()))
    )
    db.commit()


def is_credits_under_threshold(db: Session, user_id: int) -> bool:
    user = find_by_id(db, user_id)
    if not user or user.charge_back_threshold is None:
        return False
    return user.credits < user.charge_back_threshold


def set_matrix_credentials(
    db: Session,
    user_id: int,
    username: str,
    encrypted_access_token: str,
    device_id: str,
    encrypted_password: str,
) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            matrix_username=username,
            encrypted_matrix_access_token=encrypted_access_token,
            matrix_device_id=device_id,
            encrypted_matrix_password=encrypted_password,
        )
    )
    db.commit()


def get_or_create_settings(db: Session, user_id: int) -> UserSettings:
    settings = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
    if settings:
        return settings
    settings = UserSettings(user_id=user_id)
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


def update_profile(db: Session, user_id: int, **fields) -> Optional[User]:
    """Apply the given column values; None values are skipped."""
    user = find_by_id(db, user_id)
    if not user:
        return None
    for name, value in fields.items():
        if value is not None:
            setattr(user, name, value.lower() if name == "email" else value)
    db.commit()
    db.refresh(user)
    return user


def set_notify(db: Session, user_id: int, notify: bool) -> None:
    db.execute(update(User).where(User.id == user_id).values(notify=notify))
    db.commit()


def set_verified(db: Session, user_id: int, verified: bool = True) -> None:
    db.execute(update(User).where(User.id == user_id).values(verified=verified))
    db.commit()
