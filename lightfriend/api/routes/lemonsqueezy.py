"""
Lemon Squeezy checkout and order webhook for IQ credit purchases.
"""
import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import AuthUser, get_auth_user, get_db
from lightfriend.core.context import AppContext, get_app_context
from lightfriend.core.errors import ConfigurationError, ExternalServiceError, WebhookSignatureError
from lightfriend.schemas.billing import CheckoutRequest, CheckoutResponse
from lightfriend.services import lemonsqueezy_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lemonsqueezy", tags=["Lemon Squeezy"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    auth_user: AuthUser = Depends(get_auth_user),
    app: AppContext = Depends(get_app_context),
):
    try:
        url = await lemonsqueezy_service.create_checkout(
            auth_user.user_id, payload.amount, transport=app.http_transport
        )
    except ConfigurationError as e:
        logger.error(f"Checkout unavailable: {e}")
        raise HTTPException(status_code=500, detail="Payment service not configured")
    except ExternalServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(url=url)


@router.post("/webhook")
async def lemonsqueezy_webhook(
    request: Request,
    x_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    body = await request.body()

    try:
        lemonsqueezy_service.verify_signature(body, x_signature)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Lemon Squeezy webhook: {e}")
        raise HTTPException(status_code=401, detail=str(e))
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        credited = lemonsqueezy_service.apply_order_created(db, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"status": "success", "credited": credited}
