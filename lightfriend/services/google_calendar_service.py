"""
Google Calendar account linking (OAuth 2.0 authorization code flow with PKCE).

The state parameter carries everything the callback needs, sealed with the
token cipher, so no login session is kept on the server.
"""
import base64
import hashlib
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.encryption import EncryptionError, decrypt_token, encrypt_token
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.repositories import connection_repository

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"
STATE_TTL_SECONDS = 600


class InvalidStateError(ValueError):
    pass


@dataclass
class OAuthState:
    user_id: int
    csrf: str
    code_verifier: str
    expires_at: int


def _client_credentials():
    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        raise ConfigurationError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set")
    return config.GOOGLE_CLIENT_ID, config.GOOGLE_CLIENT_SECRET


def code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorization_url(user_id: int, now: Optional[float] = None) -> str:
    """
    Start the consent flow for a user.

    Returns:
        The Google consent URL; the user is sent there by the frontend
    """
    client_id, _ = _client_credentials()
    now = time.time() if now is None else now
    state = OAuthState(
        user_id=user_id,
        csrf=secrets.token_urlsafe(16),
        code_verifier=secrets.token_urlsafe(64),
        expires_at=int(now) + STATE_TTL_SECONDS,
    )
    sealed = encrypt_token(json.dumps(state.__dict__))
    params = {
        "client_id": client_id,
        "redirect_uri": config.GOOGLE_REDIRECT_URL,
        "response_type": "code",
        "scope": CALENDAR_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
        "code_challenge": code_challenge(state.code_verifier),
        "code_challenge_method": "S256",
        "state": sealed,
    }
    logger.info(f"Google OAuth flow started for user {user_id}")
    return f"{AUTH_URL}?{urlencode(params)}"


def parse_state(sealed: str, now: Optional[float] = None) -> OAuthState:
    """
    Open and check a state value coming back on the callback.

    Raises:
        InvalidStateError: Tampered, malformed or expired
    """
    try:
        data = json.loads(decrypt_token(sealed))
        state = OAuthState(
            user_id=int(data["user_id"]),
            csrf=str(data["csrf"]),
            code_verifier=str(data["code_verifier"]),
            expires_at=int(data["expires_at"]),
        )
    except (EncryptionError, KeyError, TypeError, ValueError) as e:
        raise InvalidStateError("Invalid OAuth state") from e

    now = time.time() if now is None else now
    if state.expires_at < now:
        raise InvalidStateError("OAuth state expired")
    return state


async def exchange_code(
    code: str,
    code_verifier: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Trade the authorization code for access and refresh tokens."""
    client_id, client_secret = _client_credentials()
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "code_verifier": code_verifier,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": config.GOOGLE_REDIRECT_URL,
    }
    try:
        async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
            response = await client.post(TOKEN_URL, data=form)
    except httpx.HTTPError as e:
        raise ExternalServiceError("google", f"Token request failed: {e}") from e

    if response.is_error:
        logger.error(f"Google token endpoint error {response.status_code}: {response.text[:500]}")
        raise ExternalServiceError("google", "Token exchange failed", status_code=response.status_code)

    tokens = response.json()
    if not tokens.get("access_token"):
        raise ExternalServiceError("google", "No access token in response")
    return tokens


async def complete_authorization(
    db: Session,
    code: str,
    sealed_state: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Finish the callback: check the state, exchange the code, store the tokens.

    Returns:
        The id of the user whose calendar got linked
    """
    state = parse_state(sealed_state)
    tokens = await exchange_code(code, state.code_verifier, transport=transport)
    connection_repository.set_calendar_connection(
        db,
        state.user_id,
        encrypted_access_token=encrypt_token(tokens["access_token"]),
        encrypted_refresh_token=encrypt_token(tokens.get("refresh_token") or ""),
        expires_in=tokens.get("expires_in"),
    )
    logger.info(f"Google Calendar linked for user {state.user_id}")
    return state.user_id


def get_status(db: Session, user_id: int) -> Dict[str, Any]:
    connection = connection_repository.get_calendar_connection(db, user_id)
    return {"connected": connection is not None}
