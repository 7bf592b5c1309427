"""
Minimal Matrix client-server API client used to drive the WhatsApp bridge.

Each user gets their own Matrix account on our homeserver, created through
the Synapse shared-secret registration endpoint.
"""
import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.encryption import decrypt_token, encrypt_token
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.db.models.user import User
from lightfriend.repositories import user_repository

logger = logging.getLogger(__name__)

CLIENT_API = "/_matrix/client/v3"
REGISTER_PATH = "/_synapse/admin/v1/register"


@dataclass
class MatrixCredentials:
    username: str
    password: str
    access_token: str
    device_id: str


def registration_mac(shared_secret: str, nonce: str, username: str, password: str, admin: bool = False) -> str:
    """HMAC-SHA1 over the NUL-separated registration fields."""
    mac = hmac.new(shared_secret.encode("utf-8"), digestmod=hashlib.sha1)
    mac.update(nonce.encode("utf-8"))
    mac.update(b"\x00")
    mac.update(username.encode("utf-8"))
    mac.update(b"\x00")
    mac.update(password.encode("utf-8"))
    mac.update(b"\x00")
    mac.update(b"admin" if admin else b"notadmin")
    return mac.hexdigest()


def _homeserver() -> str:
    if not config.MATRIX_HOMESERVER:
        raise ConfigurationError("MATRIX_HOMESERVER not configured")
    return config.MATRIX_HOMESERVER.rstrip("/")


async def register_user(transport: Optional[httpx.AsyncBaseTransport] = None) -> MatrixCredentials:
    """Create a fresh Matrix account with the homeserver's shared secret."""
    if not config.MATRIX_SHARED_SECRET:
        raise ConfigurationError("MATRIX_SHARED_SECRET not configured")

    username = f"appuser_{uuid.uuid4().hex}"
    password = str(uuid.uuid4())
    url = f"{_homeserver()}{REGISTER_PATH}"

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        nonce_response = await client.get(url)
        if nonce_response.is_error:
            raise ExternalServiceError("matrix", "Failed to get registration nonce", nonce_response.status_code)
        nonce = nonce_response.json()["nonce"]

        response = await client.post(
            url,
            json={
                "nonce": nonce,
                "username": username,
                "password": password,
                "admin": False,
                "mac": registration_mac(config.MATRIX_SHARED_SECRET, nonce, username, password),
            },
        )
    if response.is_error:
        raise ExternalServiceError("matrix", f"Registration failed: {response.text[:200]}", response.status_code)

    data = response.json()
    logger.info(f"Registered Matrix user {username}")
    return MatrixCredentials(
        username=username,
        password=password,
        access_token=data["access_token"],
        device_id=data.get("device_id", ""),
    )


class MatrixClient:
    def __init__(
        self,
        access_token: str,
        user_id: Optional[str] = None,
        homeserver: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.user_id = user_id
        self.homeserver = (homeserver or _homeserver()).rstrip("/")
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.homeserver}{CLIENT_API}",
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=30.0,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)
        if response.is_error:
            raise ExternalServiceError(
                "matrix", f"{method} {path} failed: {response.text[:200]}", response.status_code
            )
        return response.json() if response.content else {}

    async def create_room(self, invite: List[str], name: Optional[str] = None, is_direct: bool = True) -> str:
        body: Dict[str, Any] = {"invite": invite, "is_direct": is_direct, "preset": "private_chat"}
        if name:
            body["name"] = name
        data = await self._request("POST", "/createRoom", json=body)
        return data["room_id"]

    async def joined_rooms(self) -> List[str]:
        data = await self._request("GET", "/joined_rooms")
        return data.get("joined_rooms", [])

    async def joined_members(self, room_id: str) -> List[str]:
        data = await self._request("GET", f"/rooms/{quote(room_id)}/joined_members")
        return list((data.get("joined") or {}).keys())

    async def room_name(self, room_id: str) -> Optional[str]:
        try:
            data = await self._request("GET", f"/rooms/{quote(room_id)}/state/m.room.name")
        except ExternalServiceError as e:
            if e.status_code == 404:
                return None
            raise
        return data.get("name")

    async def send_text(self, room_id: str, body: str) -> str:
        txn_id = uuid.uuid4().hex
        data = await self._request(
            "PUT",
            f"/rooms/{quote(room_id)}/send/m.room.message/{txn_id}",
            json={"msgtype": "m.text", "body": body},
        )
        return data.get("event_id", "")

    async def messages(self, room_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Latest m.room.message events, newest first."""
        data = await self._request(
            "GET",
            f"/rooms/{quote(room_id)}/messages",
            params={"dir": "b", "limit": limit},
        )
        return [event for event in data.get("chunk", []) if event.get("type") == "m.room.message"]


async def get_client_for_user(
    db: Session,
    user: User,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> MatrixClient:
    """
    Return a client logged in as the user's Matrix account, registering one
    on first use. Credentials are stored encrypted.
    """
    if user.matrix_username and user.encrypted_matrix_access_token:
        return MatrixClient(decrypt_token(user.encrypted_matrix_access_token), user.matrix_username, transport=transport)

    credentials = await register_user(transport)
    user_repository.set_matrix_credentials(
        db,
        user.id,
        username=credentials.username,
        encrypted_access_token=encrypt_token(credentials.access_token),
        device_id=credentials.device_id,
        encrypted_password=encrypt_token(credentials.password),
    )
    db.refresh(user)
    return MatrixClient(credentials.access_token, credentials.username, transport=transport)
