import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from lightfriend.core.auth_dependency import get_db
from lightfriend.core.errors import ConfigurationError, WebhookSignatureError
from lightfriend.services import paddle_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/paddle", tags=["Paddle"])


@router.post("/webhook")
async def paddle_webhook(
    request: Request,
    paddle_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    """Mirror Paddle subscription events into our subscriptions table."""
    body = await request.body()

    try:
        paddle_service.verify_signature(body, paddle_signature)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Paddle webhook: {e}")
        raise HTTPException(status_code=401, detail=str(e))
    except ConfigurationError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        result = paddle_service.handle_subscription_event(db, payload)
    except LookupError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=404, detail="User not found")

    return {"status": result}
