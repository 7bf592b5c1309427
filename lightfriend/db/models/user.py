from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from lightfriend.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    phone_number = Column(String, unique=True, index=True, nullable=False)
    nickname = Column(String, nullable=True)
    info = Column(Text, nullable=True)  # free-form "what the assistant should know about me"
    timezone = Column(String, nullable=True)

    # Balances. credits_left is the monthly quota, credits the top-up balance.
    credits = Column(Float, default=0.0, nullable=False)
    credits_left = Column(Float, default=0.0, nullable=False)
    sub_tier = Column(String, nullable=True)  # "tier 1" | "tier 2"
    discount_tier = Column(String, nullable=True)  # "full" | "msg" | "voice"

    preferred_number = Column(String, nullable=True)
    phone_number_country = Column(String, nullable=True)  # ISO alpha-2, e.g. "US"
    is_admin = Column(Boolean, default=False, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    notify = Column(Boolean, default=True, nullable=False)

    # Automatic recharge
    charge_when_under = Column(Boolean, default=False, nullable=False)
    charge_back_threshold = Column(Float, nullable=True)
    charge_back_amount = Column(Float, nullable=True)
    last_credits_notification = Column(Integer, nullable=True)  # unix seconds
    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_payment_method_id = Column(String, nullable=True)

    # Matrix account used for messaging bridges
    matrix_username = Column(String, nullable=True)
    encrypted_matrix_access_token = Column(Text, nullable=True)
    matrix_device_id = Column(String, nullable=True)
    encrypted_matrix_password = Column(Text, nullable=True)

    # Bring-your-own Twilio credentials
    twilio_account_sid = Column(String, nullable=True)
    twilio_auth_token = Column(Text, nullable=True)  # encrypted

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    agent_language = Column(String, default="en", nullable=False)
    notification_type = Column(String, nullable=True)  # "sms" | "call"
    save_context = Column(Integer, nullable=True)  # number of past turns fed back to the agent
    elevenlabs_phone_number_id = Column(String, nullable=True)
    notify_about_calls = Column(Boolean, default=True, nullable=False)
