"""
Pydantic schemas for admin endpoints.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class AdminUser(BaseModel):
    id: int
    email: str
    phone_number: str
    credits: float
    credits_left: float
    sub_tier: Optional[str] = None
    discount_tier: Optional[str] = None
    verified: bool
    is_admin: bool

    class Config:
        from_attributes = True


class SetCreditsRequest(BaseModel):
    credits: float = Field(..., ge=0, description="New top-up balance")
    credits_left: Optional[float] = Field(None, ge=0, description="New monthly quota, unchanged when empty")


class SetDiscountRequest(BaseModel):
    discount_tier: Optional[Literal["full", "msg", "voice"]] = Field(None, description="None removes the discount")


class OutboxJobResponse(BaseModel):
    id: int
    kind: str
    status: str
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None

    class Config:
        from_attributes = True
