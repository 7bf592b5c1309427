"""
Unipile hosted account linking.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.core.signatures import verify_hex_hmac_sha256
from lightfriend.db.models.connection import UnipileConnection
from lightfriend.repositories import connection_repository, user_repository

logger = logging.getLogger(__name__)


def build_auth_link_request(user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    expires_on = (now + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%S.") + f"{(now.microsecond // 1000):03d}Z"
    return {
        "type": "create",
        "providers": "*",
        "expiresOn": expires_on,
        "name": str(user_id),
        "success_redirect_url": f"{config.FRONTEND_URL}/?success=true",
        "failure_redirect_url": f"{config.FRONTEND_URL}/?success=false",
        "notify_url": f"{config.SERVER_URL}/api/unipile/connection",
        "api_url": config.UNIPILE_API_URL,
    }


async def create_auth_link(user_id: int, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    """Ask Unipile for a hosted link where the user connects an account."""
    if not config.UNIPILE_API_URL or not config.UNIPILE_API_KEY:
        raise ConfigurationError("UNIPILE_API_URL and UNIPILE_API_KEY must be set")

    url = f"{config.UNIPILE_API_URL.rstrip('/')}/api/v1/hosted/accounts/link"
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            response = await client.post(
                url,
                headers={"X-API-KEY": config.UNIPILE_API_KEY},
                json=build_auth_link_request(user_id),
            )
    except httpx.HTTPError as e:
        raise ExternalServiceError("unipile", f"Failed to contact Unipile API: {e}") from e

    if response.is_error:
        logger.error(f"Unipile auth link failed: {response.status_code} {response.text[:300]}")
        raise ExternalServiceError(
            "unipile", f"Failed to get auth link from Unipile: Status {response.status_code}", response.status_code
        )
    return response.json()["url"]


def verify_signature(body: bytes, signature: Optional[str]) -> None:
    if not config.UNIPILE_WEBHOOK_SECRET:
        raise ConfigurationError("UNIPILE_WEBHOOK_SECRET not configured")
    verify_hex_hmac_sha256(body, signature, config.UNIPILE_WEBHOOK_SECRET)


def record_connection(db: Session, name: str, account_id: str, status: str) -> UnipileConnection:
    """
    Store the account Unipile linked for a user. The link was created with the
    user id as its name, so that is what comes back here.

    Raises:
        ValueError: name is not a user id
        LookupError: no such user
    """
    try:
        user_id = int(name)
    except (TypeError, ValueError) as e:
        raise ValueError("Invalid user ID in payload") from e
    if user_repository.find_by_id(db, user_id) is None:
        raise LookupError("User not found")

    connection = connection_repository.create_unipile_connection(db, user_id, account_id, status, provider="UNIPILE")
    logger.info(f"Unipile connection stored: user_id={user_id}, status={status}")
    return connection
