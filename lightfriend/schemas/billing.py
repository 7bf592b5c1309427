"""
Pydantic schemas for payments.
"""
from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    amount: int = Field(..., gt=0, le=100000, description="IQ credits to buy")

    class Config:
        json_schema_extra = {"example": {"amount": 300}}


class CheckoutResponse(BaseModel):
    url: str = Field(..., description="Hosted checkout URL")
