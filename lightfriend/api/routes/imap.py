"""
IMAP mailbox connection and inbox previews.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import AuthUser, get_auth_user, get_db
from lightfriend.core.encryption import encrypt_token
from lightfriend.repositories import connection_repository
from lightfriend.schemas.connections import (
    EmailPreview,
    EmailPreviewsResponse,
    FullEmail,
    ImapLoginRequest,
    ImapStatusResponse,
)
from lightfriend.services import imap_service
from lightfriend.services.imap_service import (
    ImapConnectionError,
    ImapCredentialsError,
    ImapError,
    NoImapConnectionError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["IMAP"])


def _error_status(error: ImapError) -> int:
    if isinstance(error, NoImapConnectionError):
        return 404
    if isinstance(error, ImapCredentialsError):
        return 401
    if isinstance(error, ImapConnectionError):
        return 502
    return 500


@router.post("/auth/imap/login")
async def imap_login(
    payload: ImapLoginRequest,
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    """Check the credentials against the server, then store them encrypted."""
    try:
        await asyncio.to_thread(
            imap_service.verify_credentials,
            payload.email,
            payload.password,
            payload.imap_server,
            payload.imap_port,
        )
    except ImapError as e:
        logger.warning(f"IMAP login rejected for user {auth_user.user_id}: {e}")
        raise HTTPException(status_code=_error_status(e), detail=str(e))

    connection_repository.set_imap_connection(
        db,
        auth_user.user_id,
        email=payload.email,
        encrypted_password=encrypt_token(payload.password),
        imap_server=payload.imap_server,
        imap_port=payload.imap_port,
    )
    logger.info(f"IMAP connection stored for user {auth_user.user_id}")
    return {"message": "IMAP connection established"}


@router.get("/auth/imap/status", response_model=ImapStatusResponse)
def imap_status(auth_user: AuthUser = Depends(get_auth_user), db: Session = Depends(get_db)):
    connection = connection_repository.get_imap_connection(db, auth_user.user_id)
    if connection is None:
        return ImapStatusResponse(connected=False)
    return ImapStatusResponse(connected=True, email=connection.description, provider=connection.method)


@router.delete("/auth/imap/connection")
def imap_disconnect(auth_user: AuthUser = Depends(get_auth_user), db: Session = Depends(get_db)):
    if not connection_repository.delete_imap_connection(db, auth_user.user_id):
        raise HTTPException(status_code=404, detail="No IMAP connection found")
    return {"message": "IMAP connection deleted"}


@router.get("/imap/previews", response_model=EmailPreviewsResponse)
async def imap_previews(
    limit: int = Query(20, ge=1, le=50),
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    try:
        messages = await asyncio.to_thread(imap_service.fetch_emails, db, auth_user.user_id, limit)
    except ImapError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))

    previews = [
        EmailPreview(
            id=m.id,
            subject=m.subject or "No subject",
            sender=m.sender or "Unknown sender",
            date=m.date_formatted,
            snippet=m.snippet,
            is_read=m.is_read,
        )
        for m in messages
    ]
    return EmailPreviewsResponse(previews=previews)


@router.get("/imap/emails/{uid}", response_model=FullEmail)
async def imap_full_email(
    uid: str,
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
):
    try:
        message = await asyncio.to_thread(imap_service.fetch_email, db, auth_user.user_id, uid)
    except ImapError as e:
        raise HTTPException(status_code=_error_status(e), detail=str(e))
    if message is None:
        raise HTTPException(status_code=404, detail="Email not found")
    return FullEmail(**message.to_dict())
