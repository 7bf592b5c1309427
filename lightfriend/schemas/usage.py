"""
Pydantic schemas for usage responses.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class UsageLogEntry(BaseModel):
    id: int
    activity_type: str
    credits: Optional[float] = None
    success: Optional[bool] = None
    reason: Optional[str] = None
    time_consumed: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UsageResponse(BaseModel):
    since: int = Field(..., description="Unix seconds the window starts at")
    credits: float
    credits_left: float
    totals: Dict[str, float] = Field(..., description="Credits spent per activity type")
    logs: List[UsageLogEntry]
