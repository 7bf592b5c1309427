import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import AuthUser, get_auth_user, get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.core.errors import ConfigurationError, ExternalServiceError, WebhookSignatureError
from lightfriend.schemas.connections import UnipileConnectionEvent
from lightfriend.services import unipile_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/unipile", tags=["Unipile"])


@router.get("/auth-link")
async def get_auth_link(
    auth_user: AuthUser = Depends(get_auth_user),
    app: AppContext = Depends(get_app_context),
):
    """Hosted link where the user connects an account through Unipile."""
    try:
        url = await unipile_service.create_auth_link(auth_user.user_id, transport=app.http_transport)
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Unipile not configured")
    except ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"url": url}


@router.post("/connection")
async def connection_callback(
    request: Request,
    x_unipile_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    """Unipile calls this when a hosted auth flow finishes."""
    body = await request.body()

    try:
        unipile_service.verify_signature(body, x_unipile_signature)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Unipile callback: {e}")
        raise HTTPException(status_code=401, detail=str(e))
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        event = UnipileConnectionEvent.model_validate_json(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    try:
        unipile_service.record_connection(db, event.name, event.account_id, event.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"message": "Connection saved"}
