"""
Integration tests for GET /api/usage.
"""
import time
from datetime import datetime, timedelta

from lightfriend.db.models.usage import UsageLog


def _log(db, user_id, activity, credits, age_days=0):
    entry = UsageLog(
        user_id=user_id,
        activity_type=activity,
        credits=credits,
        success=True,
        created_at=datetime.utcnow() - timedelta(days=age_days),
    )
    db.add(entry)
    db.commit()


def test_usage_requires_auth(client):
    assert client.get("/api/usage").status_code == 401


def test_usage_totals_and_logs(client, db, make_user, auth_headers):
    user = make_user(credits=4.5, credits_left=1.0)
    _log(db, user.id, "sms", 0.3)
    _log(db, user.id, "sms", 0.3)
    _log(db, user.id, "call", 1.2)

    response = client.get("/api/usage", headers=auth_headers(user))

    assert response.status_code == 200
    data = response.json()
    assert data["credits"] == 4.5
    assert data["credits_left"] == 1.0
    assert data["totals"]["sms"] == 0.6
    assert data["totals"]["call"] == 1.2
    assert len(data["logs"]) == 3


def test_usage_since_filters_old_entries(client, db, make_user, auth_headers):
    user = make_user()
    _log(db, user.id, "sms", 0.3, age_days=10)
    _log(db, user.id, "sms", 0.3)

    since = int(time.time()) - 24 * 3600
    response = client.get(f"/api/usage?since={since}", headers=auth_headers(user))

    data = response.json()
    assert data["since"] == since
    assert len(data["logs"]) == 1


def test_usage_only_shows_own_entries(client, db, make_user, auth_headers):
    user = make_user()
    other = make_user()
    _log(db, other.id, "sms", 0.3)

    data = client.get("/api/usage", headers=auth_headers(user)).json()
    assert data["logs"] == []
    assert data["totals"] == {}
