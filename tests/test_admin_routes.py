"""
Tests for the admin endpoints and the Unipile account-link callback.
"""
import hashlib
import hmac
import json

import httpx
import pytest

from lightfriend.core import config
from lightfriend.db.models.connection import UnipileConnection
from lightfriend.db.models.outbox import OUTBOX_FAILED, OUTBOX_PENDING
from lightfriend.db.models.user import User
from lightfriend.services import outbox_service
from lightfriend.services.outbox_service import JobKind


@pytest.fixture
def admin(make_user):
    return make_user(is_admin=True)


def _reload(db, user_id):
    db.expire_all()
    return db.get(User, user_id)


def test_non_admin_is_forbidden(client, make_user, auth_headers):
    response = client.get("/api/admin/users", headers=auth_headers(make_user()))
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


def test_missing_token(client):
    assert client.get("/api/admin/users").status_code == 401


def test_list_users(client, admin, make_user, auth_headers):
    other = make_user()
    users = client.get("/api/admin/users", headers=auth_headers(admin)).json()
    assert [u["id"] for u in users] == [admin.id, other.id]
    assert users[0]["is_admin"] is True


def test_set_credits(client, db, admin, make_user, auth_headers):
    user = make_user()
    response = client.post(
        f"/api/admin/users/{user.id}/credits",
        json={"credits": 25.5, "credits_left": 3},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    refreshed = _reload(db, user.id)
    assert refreshed.credits == 25.5
    assert refreshed.credits_left == 3.0


def test_set_credits_rejects_negative(client, admin, make_user, auth_headers):
    user = make_user()
    response = client.post(f"/api/admin/users/{user.id}/credits", json={"credits": -1}, headers=auth_headers(admin))
    assert response.status_code == 422


def test_discount_and_verify(client, db, admin, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(admin)

    assert client.post(f"/api/admin/users/{user.id}/discount", json={"discount_tier": "msg"}, headers=headers).status_code == 200
    assert client.post(f"/api/admin/users/{user.id}/verify", headers=headers).status_code == 200

    refreshed = _reload(db, user.id)
    assert refreshed.discount_tier == "msg"
    assert refreshed.verified is True

    assert client.post(f"/api/admin/users/{user.id}/discount", json={"discount_tier": "gold"}, headers=headers).status_code == 422


def test_unknown_user(client, admin, auth_headers):
    response = client.post("/api/admin/users/999/verify", headers=auth_headers(admin))
    assert response.status_code == 404


def test_outbox_listing_and_retry(client, db, admin, auth_headers):
    job = outbox_service.enqueue(db, JobKind.SEND_SMS, {"user_id": 1, "body": "hi"})
    job.status = OUTBOX_FAILED
    job.attempts = 5
    job.last_error = "twilio down"
    db.commit()
    headers = auth_headers(admin)

    failed = client.get("/api/admin/outbox", params={"status": "failed"}, headers=headers).json()
    assert [j["id"] for j in failed] == [job.id]
    assert failed[0]["last_error"] == "twilio down"

    retried = client.post(f"/api/admin/outbox/{job.id}/retry", headers=headers).json()
    assert retried["status"] == OUTBOX_PENDING
    assert retried["attempts"] == 0

    assert client.post("/api/admin/outbox/999/retry", headers=headers).status_code == 404


@pytest.fixture
def unipile_secret(monkeypatch):
    monkeypatch.setattr(config, "UNIPILE_WEBHOOK_SECRET", "unipile-secret")
    return "unipile-secret"


def _signed(body: bytes, secret: str) -> dict:
    return {"x-unipile-signature": hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()}


def test_unipile_callback_records_connection(client, db, make_user, unipile_secret):
    user = make_user()
    body = json.dumps({"status": "CREATION_SUCCESS", "account_id": "acc_1", "name": str(user.id)}).encode()

    response = client.post("/api/unipile/connection", content=body, headers=_signed(body, unipile_secret))

    assert response.status_code == 200
    connection = db.query(UnipileConnection).filter(UnipileConnection.user_id == user.id).one()
    assert connection.account_id == "acc_1"
    assert connection.status == "CREATION_SUCCESS"


def test_unipile_callback_bad_signature(client, make_user, unipile_secret):
    body = json.dumps({"status": "CREATION_SUCCESS", "account_id": "acc_1", "name": "1"}).encode()
    response = client.post("/api/unipile/connection", content=body, headers={"x-unipile-signature": "00"})
    assert response.status_code == 401


def test_unipile_callback_unknown_user(client, unipile_secret):
    body = json.dumps({"status": "CREATION_SUCCESS", "account_id": "acc_1", "name": "404"}).encode()
    response = client.post("/api/unipile/connection", content=body, headers=_signed(body, unipile_secret))
    assert response.status_code == 404


def test_unipile_callback_invalid_name(client, unipile_secret):
    body = json.dumps({"status": "CREATION_SUCCESS", "account_id": "acc_1", "name": "bob"}).encode()
    response = client.post("/api/unipile/connection", content=body, headers=_signed(body, unipile_secret))
    assert response.status_code == 400


def test_unipile_auth_link(client, make_user, auth_headers, app_context, monkeypatch):
    monkeypatch.setattr(config, "UNIPILE_API_URL", "https://api.unipile.test")
    monkeypatch.setattr(config, "UNIPILE_API_KEY", "key")
    sent = {}

    def handler(request: httpx.Request) -> httpx.Response:
        sent["url"] = str(request.url)
        sent["body"] = json.loads(request.content)
        return httpx.Response(201, json={"object": "HostedAuthUrl", "url": "https://account.unipile.test/abc"})

    app_context.http_transport = httpx.MockTransport(handler)
    user = make_user()

    response = client.get("/api/unipile/auth-link", headers=auth_headers(user))

    assert response.json() == {"url": "https://account.unipile.test/abc"}
    assert sent["url"] == "https://api.unipile.test/api/v1/hosted/accounts/link"
    assert sent["body"]["name"] == str(user.id)
    assert sent["body"]["notify_url"].endswith("/api/unipile/connection")
