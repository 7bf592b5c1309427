"""
WhatsApp bridge linking through the Matrix bridge bot.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import get_current_user_obj, get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.db.models.user import User
from lightfriend.repositories import user_repository
from lightfriend.schemas.connections import WhatsAppConnectResponse, WhatsAppStatusResponse
from lightfriend.services import matrix_service, whatsapp_service
from lightfriend.services.whatsapp_service import BridgeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/whatsapp", tags=["WhatsApp"])


async def monitor_in_background(app: AppContext, user_id: int) -> None:
    """Wait for the login confirmation on a session of its own."""
    db = app.session_factory()
    try:
        user = user_repository.find_by_id(db, user_id)
        if user is None:
            return
        client = await matrix_service.get_client_for_user(db, user, transport=app.http_transport)
        await whatsapp_service.monitor_connection(db, user_id, client)
    except Exception as e:
        logger.error(f"WhatsApp monitor failed for user {user_id}: {e}", exc_info=True)
    finally:
        db.close()


@router.get("/connect", response_model=WhatsAppConnectResponse)
async def connect(
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    app: AppContext = Depends(get_app_context),
):
    """
    Start linking WhatsApp.

    Returns the pairing code right away; the login confirmation is watched
    in the background and flips the bridge to connected.
    """
    try:
        client = await matrix_service.get_client_for_user(db, user, transport=app.http_transport)
        code = await whatsapp_service.start_connection(db, user.id, user.phone_number, client)
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="WhatsApp bridge not configured")
    except (BridgeError, ExternalServiceError) as e:
        logger.warning(f"WhatsApp connect failed for user {user.id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    background_tasks.add_task(monitor_in_background, app, user.id)
    return WhatsAppConnectResponse(pairing_code=code)


@router.get("/status", response_model=WhatsAppStatusResponse)
def status(user: User = Depends(get_current_user_obj), db: Session = Depends(get_db)):
    return whatsapp_service.get_status(db, user.id)


@router.delete("/connection")
async def disconnect(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    app: AppContext = Depends(get_app_context),
):
    client = None
    if user.matrix_username and user.encrypted_matrix_access_token:
        client = await matrix_service.get_client_for_user(db, user, transport=app.http_transport)

    try:
        removed = await whatsapp_service.disconnect(db, user.id, client)
    except ExternalServiceError as e:
        # The bridge may already be gone on the Matrix side; forget it locally anyway
        logger.warning(f"WhatsApp logout commands failed for user {user.id}: {e}")
        removed = whatsapp_service.forget_bridge(db, user.id)

    if not removed:
        raise HTTPException(status_code=404, detail="No WhatsApp connection found")
    return {"message": "WhatsApp disconnected successfully"}
