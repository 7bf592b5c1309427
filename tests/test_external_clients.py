"""
Tests for the outbound API clients: Twilio, Stripe recharges, Lemon Squeezy
checkouts, Paddle item sync and Langfuse traces.
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from twilio.base.exceptions import TwilioException

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.core.phone_numbers import PhoneNumberRegistry, SenderNumber
from lightfriend.db.models.conversation import Conversation
from lightfriend.db.models.user import User
from lightfriend.services import billing_service, langfuse_service, lemonsqueezy_service, paddle_service
from lightfriend.services.billing_service import RechargeError
from lightfriend.services.twilio_service import TwilioMessenger

FIN = "+358401111111"
USA = "+15550001111"


@pytest.fixture
def registry():
    return PhoneNumberRegistry({
        "fin": SenderNumber(FIN, ["swe", "nor"]),
        "usa": SenderNumber(USA, ["can"]),
    })


@pytest.fixture
def twilio_client():
    client = MagicMock()
    conversations = client.conversations.v1.conversations
    conversations.create.return_value = SimpleNamespace(sid="CH100", chat_service_sid="IS1")
    conversations.return_value.messages.create.return_value = SimpleNamespace(sid="IM100")
    return client


def test_sender_number_selection(registry, make_user, monkeypatch):
    monkeypatch.setattr(config, "SHAZAM_PHONE_NUMBER", None)
    messenger = TwilioMessenger(registry, client=MagicMock())

    assert messenger.sender_number_for(make_user(preferred_number="+3197000000")) == "+3197000000"
    assert messenger.sender_number_for(make_user(phone_number_country="SE")) == FIN
    assert messenger.sender_number_for(make_user(phone_number="+14155550100")) == USA
    assert messenger.sender_number_for(make_user(phone_number_country="JP")) == FIN


def test_ensure_conversation_creates_and_reuses(db, make_user, registry, twilio_client):
    user = make_user()
    messenger = TwilioMessenger(registry, client=twilio_client)

    conversation = messenger.ensure_conversation(db, user, FIN)

    assert conversation.conversation_sid == "CH100"
    twilio_client.conversations.v1.conversations.return_value.participants.create.assert_called_once_with(
        messaging_binding_address=user.phone_number,
        messaging_binding_proxy_address=FIN,
    )

    participants = twilio_client.conversations.v1.conversations.return_value.participants
    participants.list.return_value = [SimpleNamespace(messaging_binding={"address": user.phone_number})]
    assert messenger.ensure_conversation(db, user, FIN).id == conversation.id
    assert twilio_client.conversations.v1.conversations.create.call_count == 1


def test_ensure_conversation_replaces_dead_thread(db, make_user, registry, twilio_client):
    user = make_user()
    messenger = TwilioMessenger(registry, client=twilio_client)
    first = messenger.ensure_conversation(db, user, FIN)

    twilio_client.conversations.v1.conversations.return_value.participants.list.return_value = []
    twilio_client.conversations.v1.conversations.create.return_value = SimpleNamespace(sid="CH200", chat_service_sid="IS1")
    second = messenger.ensure_conversation(db, user, FIN)

    assert second.conversation_sid == "CH200"
    db.expire_all()
    assert db.get(Conversation, first.id).active is False


def test_notify_user_sends_on_thread(db, make_user, registry, twilio_client):
    user = make_user()
    messenger = TwilioMessenger(registry, client=twilio_client)

    assert messenger.notify_user(db, user, "Credits low") == "IM100"
    twilio_client.conversations.v1.conversations.return_value.messages.create.assert_called_once_with(
        author=FIN, body="Credits low"
    )


def test_send_sms_wraps_twilio_errors(registry):
    client = MagicMock()
    client.messages.create.side_effect = TwilioException("queue full")
    with pytest.raises(ExternalServiceError):
        TwilioMessenger(registry, client=client).send_sms("+358401234567", "hi", FIN)


def test_missing_twilio_credentials(registry, monkeypatch):
    monkeypatch.setattr(config, "TWILIO_ACCOUNT_SID", None)
    with pytest.raises(ConfigurationError):
        TwilioMessenger(registry).client


def test_automatic_charge_tops_up(db, make_user, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
    created = {}

    def fake_create(**kwargs):
        created.update(kwargs)
        return SimpleNamespace(id="pi_1", status="succeeded")

    monkeypatch.setattr(billing_service.stripe.PaymentIntent, "create", fake_create)
    user = make_user(
        credits=1.0, charge_when_under=True, charge_back_threshold=2.0, charge_back_amount=7.5,
        stripe_customer_id="cus_1", stripe_payment_method_id="pm_1",
    )

    result = billing_service.automatic_charge(db, user.id)

    assert result == {"payment_intent_id": "pi_1", "amount": 7.5}
    assert created["amount"] == 750
    assert created["off_session"] is True
    db.expire_all()
    assert db.get(User, user.id).credits == 8.5
    assert "idempotency_key" not in created


def test_automatic_charge_skips_above_threshold(db, make_user, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
    create = MagicMock()
    monkeypatch.setattr(billing_service.stripe.PaymentIntent, "create", create)
    user = make_user(
        credits=9.0, charge_when_under=True, charge_back_threshold=2.0,
        stripe_customer_id="cus_1", stripe_payment_method_id="pm_1",
    )

    assert billing_service.automatic_charge(db, user.id) == {"payment_intent_id": None, "amount": 0.0}
    create.assert_not_called()


def test_automatic_charge_needs_payment_method(db, make_user, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
    user = make_user(credits=1.0, charge_when_under=True, charge_back_threshold=2.0)
    with pytest.raises(RechargeError):
        billing_service.automatic_charge(db, user.id)


def test_automatic_charge_rejects_unfinished_intent(db, make_user, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test")
    monkeypatch.setattr(
        billing_service.stripe.PaymentIntent, "create",
        lambda **kwargs: SimpleNamespace(id="pi_2", status="requires_action"),
    )
    user = make_user(
        credits=1.0, charge_when_under=True, charge_back_threshold=2.0,
        stripe_customer_id="cus_1", stripe_payment_method_id="pm_1",
    )

    with pytest.raises(RechargeError):
        billing_service.automatic_charge(db, user.id)
    db.expire_all()
    assert db.get(User, user.id).credits == 1.0


async def test_lemon_checkout(monkeypatch):
    monkeypatch.setattr(config, "LEMON_SQUEEZY_API_KEY", "lemon")
    monkeypatch.setattr(config, "LEMON_SQUEEZY_STORE_ID", "store_1")
    monkeypatch.setattr(config, "LEMON_SQUEEZY_VARIANT_ID", "variant_1")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"data": {"attributes": {"url": "https://pay.example/c/1"}}})

    url = await lemonsqueezy_service.create_checkout(5, 600, transport=httpx.MockTransport(handler))

    assert url == "https://pay.example/c/1"
    assert seen["headers"]["content-type"] == "application/vnd.api+json"
    attributes = seen["body"]["data"]["attributes"]
    assert attributes["custom_price"] == 200
    assert attributes["checkout_data"]["custom"] == {"user_id": "5", "iq_amount": "600"}


async def test_lemon_checkout_error(monkeypatch):
    monkeypatch.setattr(config, "LEMON_SQUEEZY_API_KEY", "lemon")
    monkeypatch.setattr(config, "LEMON_SQUEEZY_STORE_ID", "store_1")
    monkeypatch.setattr(config, "LEMON_SQUEEZY_VARIANT_ID", "variant_1")
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"errors": []}))
    with pytest.raises(ExternalServiceError):
        await lemonsqueezy_service.create_checkout(5, 600, transport=transport)


async def test_paddle_item_sync(monkeypatch):
    monkeypatch.setattr(config, "PADDLE_API_KEY", "pdl")
    monkeypatch.setattr(config, "PADDLE_ZERO_SUB_PRICE_ID", "pri_zero")
    monkeypatch.setattr(config, "PADDLE_IQ_USAGE_PRICE_ID", "pri_iq")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {}})

    await paddle_service.sync_subscription_items("sub_1", 42, transport=httpx.MockTransport(handler))

    assert seen["method"] == "PATCH"
    assert seen["path"] == "/subscriptions/sub_1"
    assert seen["body"]["items"] == [
        {"price_id": "pri_zero", "quantity": 1},
        {"price_id": "pri_iq", "quantity": 42},
    ]


async def test_langfuse_skipped_when_unconfigured(monkeypatch):
    monkeypatch.setattr(config, "LANGFUSE_PUBLIC_KEY", None)
    assert await langfuse_service.trace_sms_response("1", "in", "out", "IM1", 10, False) is False


async def test_langfuse_trace(monkeypatch):
    monkeypatch.setattr(config, "LANGFUSE_PUBLIC_KEY", "pk")
    monkeypatch.setattr(config, "LANGFUSE_SECRET_KEY", "sk")
    batches = []

    def handler(request: httpx.Request) -> httpx.Response:
        batches.append(json.loads(request.content))
        return httpx.Response(207, json={"successes": [], "errors": []})

    assert await langfuse_service.trace_sms_response(
        "1", "in", "out", "IM1", 10, True, transport=httpx.MockTransport(handler)
    ) is True
    body = batches[0]["batch"][0]["body"]
    assert body["name"] == "incoming_sms_response"
    assert body["tags"] == ["error"]
