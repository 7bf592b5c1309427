"""
Pydantic schemas for the user profile endpoints.
"""
from typing import Optional

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    id: int
    email: str
    phone_number: str
    nickname: Optional[str] = None
    info: Optional[str] = None
    timezone: Optional[str] = None
    verified: bool
    credits: float
    credits_left: float
    sub_tier: Optional[str] = None
    discount_tier: Optional[str] = None
    notify: bool
    preferred_number: Optional[str] = None
    charge_when_under: bool
    charge_back_threshold: Optional[float] = None
    charge_back_amount: Optional[float] = None

    class Config:
        from_attributes = True


class UpdateProfileRequest(BaseModel):
    """Only fields that are set are changed."""
    email: Optional[str] = Field(None, description="New account email")
    phone_number: Optional[str] = Field(None, pattern=r"^\+[1-9]\d{6,14}$", description="New phone, E.164")
    nickname: Optional[str] = Field(None, max_length=100, description="How the assistant addresses the user")
    info: Optional[str] = Field(None, max_length=1000, description="What the assistant should know")
    timezone: Optional[str] = Field(None, description="IANA timezone name, e.g. Europe/Helsinki")
    preferred_number: Optional[str] = Field(None, description="Our number to send from")
    charge_when_under: Optional[bool] = Field(None, description="Enable automatic recharge")
    charge_back_threshold: Optional[float] = Field(None, ge=0, description="Recharge below this balance")
    charge_back_amount: Optional[float] = Field(None, gt=0, description="Amount in EUR per recharge")

    class Config:
        json_schema_extra = {
            "example": {
                "nickname": "Sam",
                "timezone": "Europe/Helsinki",
                "charge_when_under": True,
                "charge_back_threshold": 2.0,
                "charge_back_amount": 5.0
            }
        }


class NotifyRequest(BaseModel):
    notify: bool = Field(..., description="Whether proactive notifications are sent")
