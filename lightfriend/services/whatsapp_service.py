"""
WhatsApp access through the mautrix-whatsapp bridge.

The user's Matrix account shares a management room with the bridge bot. Login,
logout and portal sync are bot commands sent to that room; chats show up as
portal rooms named "<chat> (WA)".
"""
import asyncio
import difflib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError
from lightfriend.db.models.bridge import BRIDGE_CONNECTED, BRIDGE_CONNECTING
from lightfriend.repositories import bridge_repository
from lightfriend.services.matrix_service import MatrixClient

logger = logging.getLogger(__name__)

BRIDGE_TYPE = "whatsapp"
PORTAL_SUFFIX = " (WA)"

BOT_JOIN_ATTEMPTS = 30
PAIRING_CODE_ATTEMPTS = 60
MONITOR_ATTEMPTS = 120
POLL_INTERVAL_SECONDS = 1.0
MONITOR_INTERVAL_SECONDS = 5.0
COMMAND_INTERVAL_SECONDS = 5.0

LOGIN_SUCCESS_MARKER = "Successfully logged in as"
LOGIN_ERROR_PATTERNS = (
    "error",
    "failed",
    "timeout",
    "disconnected",
    "invalid code",
    "connection lost",
    "authentication failed",
)
BRIDGE_NOISE = (
    "Failed to bridge media",
    "media no longer available",
    "Decrypting message from WhatsApp failed",
)
NOT_CONNECTED = "WhatsApp bridge is not connected. Please log in first."


class BridgeError(Exception):
    pass


@dataclass
class WhatsAppRoom:
    room_id: str
    display_name: str
    last_activity: int

    @property
    def chat_name(self) -> str:
        return self.display_name.split(PORTAL_SUFFIX)[0].strip()


@dataclass
class WhatsAppMessage:
    sender: str
    chat_name: str
    content: str
    timestamp: int

    @property
    def formatted_time(self) -> str:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _bot() -> str:
    if not config.WHATSAPP_BRIDGE_BOT:
        raise ConfigurationError("WHATSAPP_BRIDGE_BOT not configured")
    return config.WHATSAPP_BRIDGE_BOT


def extract_pairing_code(body: str) -> Optional[str]:
    """The bot sends the code as the last word of its notice, e.g. FQWG-FHKC."""
    if "Input the pairing code" in body:
        return None
    parts = body.split()
    if parts and "-" in parts[-1]:
        return parts[-1]
    return None


def _bot_notices(events: List[Dict[str, Any]], bot: str) -> List[str]:
    return [
        (event.get("content") or {}).get("body", "")
        for event in events
        if event.get("sender") == bot
    ]


def _require_connected(db: Session, user_id: int):
    bridge = bridge_repository.get_bridge(db, user_id, BRIDGE_TYPE)
    if bridge is None or bridge.status != BRIDGE_CONNECTED:
        raise BridgeError(NOT_CONNECTED)
    return bridge


async def start_connection(db: Session, user_id: int, phone_number: str, client: MatrixClient) -> str:
    """
    Open a management room with the bridge bot and request a pairing code.

    Returns:
        The pairing code the user types into WhatsApp's "link with phone number"

    Raises:
        BridgeError: The bot never joined or never answered with a code
    """
    bot = _bot()
    if bridge_repository.get_bridge(db, user_id, BRIDGE_TYPE):
        logger.info(f"Replacing existing WhatsApp bridge for user {user_id}")
        bridge_repository.delete_bridge(db, user_id, BRIDGE_TYPE)

    room_id = await client.create_room(invite=[bot], name="WhatsApp Bridge")
    for _ in range(BOT_JOIN_ATTEMPTS):
        if bot in await client.joined_members(room_id):
            break
        await asyncio.sleep(POLL_INTERVAL_SECONDS)
    else:
        raise BridgeError("Bridge bot did not join the room")

    await client.send_text(room_id, f"!wa login phone {phone_number}")

    code = None
    for _ in range(PAIRING_CODE_ATTEMPTS):
        for body in _bot_notices(await client.messages(room_id, limit=10), bot):
            code = extract_pairing_code(body)
            if code:
                break
        if code:
            break
        await asyncio.sleep(POLL_INTERVAL_SECONDS)
    if not code:
        raise BridgeError("Timed out waiting for the pairing code")

    bridge_repository.create_bridge(db, user_id, BRIDGE_TYPE, BRIDGE_CONNECTING, room_id)
    logger.info(f"WhatsApp pairing code issued for user {user_id}")
    return code


async def monitor_connection(db: Session, user_id: int, client: MatrixClient) -> bool:
    """
    Wait for the bot to confirm the login.

    Returns:
        True once connected. On error notices or timeout the bridge row is
        deleted and False is returned.
    """
    bot = _bot()
    bridge = bridge_repository.get_bridge(db, user_id, BRIDGE_TYPE)
    if bridge is None or not bridge.room_id:
        return False

    for attempt in range(1, MONITOR_ATTEMPTS + 1):
        for body in _bot_notices(await client.messages(bridge.room_id, limit=10), bot):
            if LOGIN_SUCCESS_MARKER in body:
                bridge_repository.update_bridge_status(db, user_id, BRIDGE_TYPE, BRIDGE_CONNECTED)
                await client.send_text(bridge.room_id, "!wa sync contacts --create-portals")
                await client.send_text(bridge.room_id, "!wa sync groups --create-portals")
                logger.info(f"WhatsApp connected for user {user_id} after {attempt} checks")
                return True
            if extract_pairing_code(body) is None and any(p in body.lower() for p in LOGIN_ERROR_PATTERNS):
                logger.warning(f"WhatsApp login failed for user {user_id}: {body[:200]}")
                bridge_repository.delete_bridge(db, user_id, BRIDGE_TYPE)
                return False
        await asyncio.sleep(MONITOR_INTERVAL_SECONDS)

    logger.warning(f"WhatsApp connection timed out for user {user_id}")
    bridge_repository.delete_bridge(db, user_id, BRIDGE_TYPE)
    return False


def get_status(db: Session, user_id: int) -> Dict[str, Any]:
    bridge = bridge_repository.get_bridge(db, user_id, BRIDGE_TYPE)
    if bridge is None:
        return {"connected": False, "status": "not_connected", "created_at": 0}
    return {
        "connected": bridge.status == BRIDGE_CONNECTED,
        "status": bridge.status,
        "created_at": bridge.created_at or 0,
    }


async def disconnect(db: Session, user_id: int, client: Optional[MatrixClient]) -> bool:
    """Log out of WhatsApp, drop portals and session, then forget the bridge."""
    bridge = bridge_repository.get_bridge(db, user_id, BRIDGE_TYPE)
    if bridge is None:
        return False
    if client is not None and bridge.room_id:
        commands = ("!wa logout", "!wa delete-all-portals", "!wa delete-session")
        for i, command in enumerate(commands):
            if i:
                await asyncio.sleep(COMMAND_INTERVAL_SECONDS)
            await client.send_text(bridge.room_id, command)
    bridge_repository.delete_bridge(db, user_id, BRIDGE_TYPE)
    logger.info(f"WhatsApp disconnected for user {user_id}")
    return True


def forget_bridge(db: Session, user_id: int) -> bool:
    return bridge_repository.delete_bridge(db, user_id, BRIDGE_TYPE)


async def list_rooms(client: MatrixClient) -> List[WhatsAppRoom]:
    """Portal rooms shared with the bridge bot, most recently active first."""
    bot = _bot()
    rooms = []
    for room_id in await client.joined_rooms():
        name = await client.room_name(room_id)
        if not name or PORTAL_SUFFIX not in name:
            continue
        if bot not in await client.joined_members(room_id):
            continue
        latest = await client.messages(room_id, limit=1)
        last_activity = latest[0].get("origin_server_ts", 0) // 1000 if latest else 0
        rooms.append(WhatsAppRoom(room_id=room_id, display_name=name, last_activity=last_activity))
    rooms.sort(key=lambda r: r.last_activity, reverse=True)
    return rooms


def rank_rooms(rooms: List[WhatsAppRoom], search_term: str) -> List[WhatsAppRoom]:
    """Exact name first, then substring, then close spellings."""
    term = search_term.strip().lower()
    scored = []
    for room in rooms:
        name = room.chat_name.lower()
        if name == term:
            score = 2.0
        elif term in name:
            score = 1.0
        else:
            score = difflib.SequenceMatcher(None, name, term).ratio()
            if score < 0.7:
                continue
        scored.append((score, room))
    scored.sort(key=lambda pair: (pair[0], pair[1].last_activity), reverse=True)
    return [room for _, room in scored]


async def search_rooms(db: Session, user_id: int, client: MatrixClient, search_term: str) -> List[WhatsAppRoom]:
    _require_connected(db, user_id)
    return rank_rooms(await list_rooms(client), search_term)


def _to_message(event: Dict[str, Any], chat_name: str) -> Optional[WhatsAppMessage]:
    body = (event.get("content") or {}).get("body", "")
    if not body or body.startswith("* Failed to") or any(noise in body for noise in BRIDGE_NOISE):
        return None
    return WhatsAppMessage(
        sender=event.get("sender", ""),
        chat_name=chat_name,
        content=body,
        timestamp=event.get("origin_server_ts", 0) // 1000,
    )


async def fetch_messages(
    db: Session,
    user_id: int,
    client: MatrixClient,
    start_time: int,
    end_time: int,
    per_room: int = 20,
) -> List[WhatsAppMessage]:
    """Messages across all chats within [start_time, end_time], newest first."""
    _require_connected(db, user_id)
    messages = []
    for room in await list_rooms(client):
        if room.last_activity < start_time:
            continue
        for event in await client.messages(room.room_id, limit=per_room):
            message = _to_message(event, room.chat_name)
            if message and start_time <= message.timestamp <= end_time:
                messages.append(message)
    messages.sort(key=lambda m: m.timestamp, reverse=True)
    return messages


async def fetch_room_messages(
    db: Session,
    user_id: int,
    client: MatrixClient,
    chat_name: str,
    limit: int = 20,
) -> List[WhatsAppMessage]:
    _require_connected(db, user_id)
    matches = rank_rooms(await list_rooms(client), chat_name)
    if not matches:
        raise BridgeError(f"No WhatsApp contacts found matching '{chat_name}'.")
    room = matches[0]
    events = await client.messages(room.room_id, limit=limit)
    return [m for m in (_to_message(e, room.chat_name) for e in events) if m]


async def resolve_chat(db: Session, user_id: int, client: MatrixClient, chat_name: str) -> WhatsAppRoom:
    """
    Find the portal room whose chat name matches exactly (case-insensitive).

    Raises:
        BridgeError: No exact match; the message lists similar names
    """
    _require_connected(db, user_id)
    rooms = await list_rooms(client)
    term = chat_name.strip().lower()
    for room in rooms:
        if room.chat_name.lower() == term:
            return room
    similar = [room.chat_name for room in rank_rooms(rooms, chat_name)]
    if similar:
        raise BridgeError(
            f"Could not find exact matching WhatsApp room for '{chat_name}'. "
            f"Did you mean one of these?\n" + "\n".join(similar)
        )
    raise BridgeError(f"Could not find exact matching WhatsApp room for '{chat_name}'")


async def send_message(client: MatrixClient, room: WhatsAppRoom, message: str) -> str:
    event_id = await client.send_text(room.room_id, message)
    logger.info(f"WhatsApp message sent to room {room.room_id}")
    return event_id
