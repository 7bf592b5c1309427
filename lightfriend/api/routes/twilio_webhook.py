import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Form
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.repositories import user_repository
from lightfriend.services.sms_service import process_incoming_sms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sms", tags=["SMS"])


@router.post("/server")
async def incoming_sms(
    background_tasks: BackgroundTasks,
    From: str = Form(...),
    To: str = Form(...),
    Body: str = Form(""),
    MediaUrl0: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    app: AppContext = Depends(get_app_context),
):
    """
    Twilio inbound SMS webhook.

    Answers immediately so Twilio does not time out; the agent runs in a
    background task and replies over the user's conversation thread.
    """
    if user_repository.find_by_phone_number(db, From) is None:
        logger.warning("Incoming SMS from unregistered number")
        return JSONResponse(status_code=404, content={"message": "User not found"})

    background_tasks.add_task(process_incoming_sms, app, From, To, Body, MediaUrl0)
    return {"message": "Message received, processing in progress"}
