import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.auth_dependency import AuthUser, get_auth_user, get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.repositories import connection_repository
from lightfriend.schemas.connections import CalendarStatusResponse, GoogleLoginResponse
from lightfriend.services import google_calendar_service
from lightfriend.services.google_calendar_service import InvalidStateError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth/google", tags=["Google Calendar"])


@router.get("/login", response_model=GoogleLoginResponse)
async def google_login(auth_user: AuthUser = Depends(get_auth_user)):
    try:
        auth_url = google_calendar_service.build_authorization_url(auth_user.user_id)
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Google OAuth not configured")
    return GoogleLoginResponse(auth_url=auth_url, message="OAuth flow initiated successfully")


@router.get("/callback")
async def google_callback(
    code: str = Query(...),
    state: str = Query(...),
    db: Session = Depends(get_db),
    app: AppContext = Depends(get_app_context),
):
    """Google redirects the browser here after consent."""
    try:
        await google_calendar_service.complete_authorization(db, code, state, transport=app.http_transport)
    except InvalidStateError as e:
        logger.warning(f"Rejected Google OAuth callback: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Google OAuth not configured")
    except ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return RedirectResponse(url=f"{config.FRONTEND_URL}/dashboard", status_code=302)


@router.get("/status", response_model=CalendarStatusResponse)
def calendar_status(auth_user: AuthUser = Depends(get_auth_user), db: Session = Depends(get_db)):
    return google_calendar_service.get_status(db, auth_user.user_id)


@router.delete("/connection")
def delete_calendar_connection(auth_user: AuthUser = Depends(get_auth_user), db: Session = Depends(get_db)):
    if not connection_repository.delete_calendar_connection(db, auth_user.user_id):
        raise HTTPException(status_code=404, detail="No Google Calendar connection found")
    return {"message": "Google Calendar disconnected"}
