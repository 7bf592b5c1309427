"""
Tests for the WhatsApp bridge flow against an in-memory Matrix stand-in.
"""
import json

import httpx
import pytest

from lightfriend.core import config
from lightfriend.db.models.bridge import BRIDGE_CONNECTED, BRIDGE_CONNECTING
from lightfriend.llm.tools import handlers
from lightfriend.llm.tools.catalog import SendWhatsappMessageArgs
from lightfriend.llm.tools.context import ToolContext
from lightfriend.repositories import bridge_repository
from lightfriend.services import matrix_service, whatsapp_service
from lightfriend.services.matrix_service import MatrixClient
from lightfriend.services.whatsapp_service import BridgeError, WhatsAppRoom

BOT = "@whatsappbot:matrix.example.org"


class FakeMatrix:
    """Rooms keyed by id; bot_replies are appended when a command is sent."""

    def __init__(self):
        self.rooms = {}
        self.sent = []
        self.bot_replies = {}

    def add_room(self, room_id, name, members, events=()):
        self.rooms[room_id] = {"name": name, "members": list(members), "events": list(events)}

    async def create_room(self, invite, name=None, is_direct=True):
        room_id = f"!mgmt{len(self.rooms)}:matrix.example.org"
        self.add_room(room_id, name, ["@me:matrix.example.org", *invite])
        return room_id

    async def joined_rooms(self):
        return list(self.rooms)

    async def joined_members(self, room_id):
        return self.rooms[room_id]["members"]

    async def room_name(self, room_id):
        return self.rooms[room_id]["name"]

    async def send_text(self, room_id, body):
        self.sent.append((room_id, body))
        for prefix, reply in self.bot_replies.items():
            if body.startswith(prefix):
                self.rooms[room_id]["events"].insert(0, _event(BOT, reply, 1700000000000))
        return f"$event{len(self.sent)}"

    async def messages(self, room_id, limit=20):
        return self.rooms[room_id]["events"][:limit]


def _event(sender, body, ts):
    return {"type": "m.room.message", "sender": sender, "content": {"body": body}, "origin_server_ts": ts}


@pytest.fixture(autouse=True)
def fast_bridge(monkeypatch):
    monkeypatch.setattr(config, "WHATSAPP_BRIDGE_BOT", BOT)
    monkeypatch.setattr(whatsapp_service, "POLL_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(whatsapp_service, "MONITOR_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(whatsapp_service, "COMMAND_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(whatsapp_service, "PAIRING_CODE_ATTEMPTS", 3)
    monkeypatch.setattr(whatsapp_service, "MONITOR_ATTEMPTS", 3)


@pytest.fixture
def matrix():
    fake = FakeMatrix()
    fake.bot_replies["!wa login phone"] = "FQWG-FHKC"
    return fake


def _connect(db, user_id, room_id="!mgmt:matrix.example.org"):
    bridge_repository.create_bridge(db, user_id, "whatsapp", BRIDGE_CONNECTED, room_id)


def test_extract_pairing_code():
    assert whatsapp_service.extract_pairing_code("FQWG-FHKC") == "FQWG-FHKC"
    assert whatsapp_service.extract_pairing_code("Your code is FQWG-FHKC") == "FQWG-FHKC"
    assert whatsapp_service.extract_pairing_code("Input the pairing code below FQWG-FHKC") is None
    assert whatsapp_service.extract_pairing_code("Scan the QR code") is None
    assert whatsapp_service.extract_pairing_code("") is None


def test_rank_rooms_prefers_exact_then_substring_then_fuzzy():
    rooms = [
        WhatsAppRoom("!1", "Anna Smith (WA)", 10),
        WhatsAppRoom("!2", "Anna (WA)", 5),
        WhatsAppRoom("!3", "Ana (WA)", 20),
        WhatsAppRoom("!4", "Bob (WA)", 30),
    ]
    ranked = whatsapp_service.rank_rooms(rooms, " anna ")
    assert [r.room_id for r in ranked] == ["!2", "!1", "!3"]


async def test_start_connection_returns_pairing_code(db, make_user, matrix):
    user = make_user()

    code = await whatsapp_service.start_connection(db, user.id, "+358401234567", matrix)

    assert code == "FQWG-FHKC"
    bridge = bridge_repository.get_bridge(db, user.id, "whatsapp")
    assert bridge.status == BRIDGE_CONNECTING
    assert matrix.sent == [(bridge.room_id, "!wa login phone +358401234567")]


async def test_start_connection_times_out_without_code(db, make_user, matrix):
    user = make_user()
    matrix.bot_replies.clear()

    with pytest.raises(BridgeError):
        await whatsapp_service.start_connection(db, user.id, "+358401234567", matrix)
    assert bridge_repository.get_bridge(db, user.id, "whatsapp") is None


async def test_monitor_marks_connected_and_syncs(db, make_user, matrix):
    user = make_user()
    await whatsapp_service.start_connection(db, user.id, "+358401234567", matrix)
    room_id = bridge_repository.get_bridge(db, user.id, "whatsapp").room_id
    matrix.rooms[room_id]["events"].insert(0, _event(BOT, "Successfully logged in as +358401234567", 1700000001000))

    assert await whatsapp_service.monitor_connection(db, user.id, matrix) is True

    db.expire_all()
    assert whatsapp_service.get_status(db, user.id)["connected"] is True
    assert matrix.sent[-2:] == [
        (room_id, "!wa sync contacts --create-portals"),
        (room_id, "!wa sync groups --create-portals"),
    ]


async def test_monitor_drops_bridge_on_error(db, make_user, matrix):
    user = make_user()
    await whatsapp_service.start_connection(db, user.id, "+358401234567", matrix)
    room_id = bridge_repository.get_bridge(db, user.id, "whatsapp").room_id
    matrix.rooms[room_id]["events"].insert(0, _event(BOT, "Login failed: connection lost", 1700000001000))

    assert await whatsapp_service.monitor_connection(db, user.id, matrix) is False
    assert whatsapp_service.get_status(db, user.id) == {"connected": False, "status": "not_connected", "created_at": 0}


async def test_disconnect_sends_logout_commands(db, make_user, matrix):
    user = make_user()
    matrix.add_room("!mgmt:matrix.example.org", "WhatsApp Bridge", [BOT])
    _connect(db, user.id)

    assert await whatsapp_service.disconnect(db, user.id, matrix) is True

    assert [body for _, body in matrix.sent] == ["!wa logout", "!wa delete-all-portals", "!wa delete-session"]
    assert bridge_repository.get_bridge(db, user.id, "whatsapp") is None


async def test_fetch_messages_filters_noise_and_time(db, make_user, matrix):
    user = make_user()
    _connect(db, user.id)
    matrix.add_room("!anna", "Anna (WA)", [BOT], [
        _event("@wa_1:x", "See you at 5", 1700000300000),
        _event("@wa_1:x", "Failed to bridge media", 1700000200000),
        _event("@wa_1:x", "Old news", 1600000000000),
    ])
    matrix.add_room("!other", "Some group", ["@me:x"], [_event("@me:x", "not a portal", 1700000300000)])

    messages = await whatsapp_service.fetch_messages(db, user.id, matrix, 1700000000, 1700001000)

    assert [(m.chat_name, m.content) for m in messages] == [("Anna", "See you at 5")]


async def test_fetch_messages_requires_connection(db, make_user, matrix):
    user = make_user()
    with pytest.raises(BridgeError, match="not connected"):
        await whatsapp_service.fetch_messages(db, user.id, matrix, 0, 1)


async def test_resolve_chat_suggests_similar_names(db, make_user, matrix):
    user = make_user()
    _connect(db, user.id)
    matrix.add_room("!anna", "Anna Smith (WA)", [BOT], [_event("@wa:x", "hi", 1700000000000)])

    with pytest.raises(BridgeError) as exc:
        await whatsapp_service.resolve_chat(db, user.id, matrix, "anna")
    assert "Anna Smith" in str(exc.value)


async def test_send_tool_defers_until_after_reply(db, make_user, matrix, app_context, monkeypatch):
    user = make_user(sub_tier="tier 2")
    _connect(db, user.id)
    matrix.add_room("!anna", "Anna (WA)", [BOT], [_event("@wa:x", "hi", 1700000000000)])

    async def fake_client(ctx):
        return matrix

    monkeypatch.setattr(handlers, "_matrix_client", fake_client)
    ctx = ToolContext(db=db, user=user, app=app_context)

    answer = await handlers.handle_send_whatsapp_message(
        SendWhatsappMessageArgs(chat_name="anna", message="On my way"), ctx
    )

    assert answer.startswith("Sending to Anna in 0 seconds")
    assert matrix.sent == []
    assert app_context.pending_messages.has_pending(user.id)

    for action in ctx.after_reply:
        await action()
    assert matrix.sent == [("!anna", "On my way")]
    assert not app_context.pending_messages.has_pending(user.id)


async def test_send_tool_respects_cancel(db, make_user, matrix, app_context, monkeypatch):
    user = make_user(sub_tier="tier 2")
    _connect(db, user.id)
    matrix.add_room("!anna", "Anna (WA)", [BOT], [_event("@wa:x", "hi", 1700000000000)])

    async def fake_client(ctx):
        return matrix

    monkeypatch.setattr(handlers, "_matrix_client", fake_client)
    app_context.whatsapp_send_delay = 5
    ctx = ToolContext(db=db, user=user, app=app_context)
    await handlers.handle_send_whatsapp_message(SendWhatsappMessageArgs(chat_name="Anna", message="hi"), ctx)

    assert app_context.pending_messages.cancel(user.id) is True
    for action in ctx.after_reply:
        await action()
    assert matrix.sent == []


def test_registration_mac_matches_synapse_format():
    mac = matrix_service.registration_mac("secret", "abc", "alice", "pw")
    assert len(mac) == 40
    assert mac != matrix_service.registration_mac("secret", "abc", "alice", "pw", admin=True)


async def test_matrix_client_keeps_only_room_messages():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token"
        assert request.url.params["dir"] == "b"
        return httpx.Response(200, json={"chunk": [
            {"type": "m.room.message", "content": {"body": "hello"}},
            {"type": "m.room.member", "content": {"membership": "join"}},
        ]})

    client = MatrixClient("token", homeserver="https://matrix.example.org", transport=httpx.MockTransport(handler))
    events = await client.messages("!room:matrix.example.org", limit=5)
    assert [e["content"]["body"] for e in events] == ["hello"]


async def test_matrix_client_room_name_missing_state():
    transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"errcode": "M_NOT_FOUND"}))
    client = MatrixClient("token", homeserver="https://matrix.example.org", transport=transport)
    assert await client.room_name("!room:x") is None
