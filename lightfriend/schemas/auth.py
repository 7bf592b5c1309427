"""
Pydantic schemas for registration and login.
"""
from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str = Field(..., description="Account email, used to log in")
    password: str = Field(..., min_length=8, description="Password, at least 8 characters")
    phone_number: str = Field(..., pattern=r"^\+[1-9]\d{6,14}$", description="Phone in E.164 format")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "password": "correct horse battery",
                "phone_number": "+358401234567"
            }
        }


class LoginRequest(BaseModel):
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class TokenResponse(BaseModel):
    token: str = Field(..., description="Bearer JWT")
    token_type: str = Field("bearer", description="Always 'bearer'")
