"""
Pydantic schemas for third-party account connections.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class ImapLoginRequest(BaseModel):
    email: str = Field(..., description="Mailbox address")
    password: str = Field(..., description="App password for the mailbox")
    imap_server: Optional[str] = Field(None, description="IMAP host, Gmail when empty")
    imap_port: Optional[int] = Field(None, ge=1, le=65535, description="IMAP port, 993 when empty")

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@gmail.com",
                "password": "abcd efgh ijkl mnop"
            }
        }


class ImapStatusResponse(BaseModel):
    connected: bool
    email: Optional[str] = None
    provider: Optional[str] = None


class EmailPreview(BaseModel):
    id: str
    subject: str
    sender: str
    date: Optional[str] = None
    snippet: str
    is_read: bool


class EmailPreviewsResponse(BaseModel):
    success: bool = True
    previews: List[EmailPreview]


class WhatsAppConnectResponse(BaseModel):
    pairing_code: str = Field(..., description="Code the user types into WhatsApp to link the bridge")


class WhatsAppStatusResponse(BaseModel):
    connected: bool
    status: str
    created_at: int


class UnipileConnectionEvent(BaseModel):
    """Body Unipile posts when a hosted auth flow completes."""
    status: str = Field(..., description="e.g. CREATION_SUCCESS")
    account_id: str
    name: str = Field(..., description="The user id passed when the link was created")


class FullEmail(BaseModel):
    id: str
    subject: Optional[str] = None
    sender: Optional[str] = None
    sender_email: Optional[str] = None
    date: Optional[str] = None
    date_formatted: Optional[str] = None
    snippet: str
    body: str
    is_read: bool


class GoogleLoginResponse(BaseModel):
    auth_url: str
    message: str


class CalendarStatusResponse(BaseModel):
    connected: bool
