"""
Tests for registration, login and the profile endpoints.
"""
from lightfriend.core.security import verify_password
from lightfriend.db.models.user import User


def test_register_success(client, db):
    response = client.post(
        "/api/register",
        json={"email": "New@Example.com", "password": "testpass123", "phone_number": "+358401234567"},
    )

    assert response.status_code == 200
    user = db.query(User).filter(User.email == "new@example.com").first()
    assert user is not None
    assert response.json()["user_id"] == user.id
    assert verify_password("testpass123", user.password_hash)


def test_register_duplicate_rejected(client, make_user):
    existing = make_user()
    response = client.post(
        "/api/register",
        json={"email": "other@example.com", "password": "testpass123", "phone_number": existing.phone_number},
    )
    assert response.status_code == 400
    assert "error" in response.json()


def test_register_rejects_invalid_phone(client):
    response = client.post(
        "/api/register",
        json={"email": "a@example.com", "password": "testpass123", "phone_number": "0401234567"},
    )
    assert response.status_code == 422


def test_login_success(client, make_user):
    user = make_user(email="login@example.com")
    response = client.post("/api/login", json={"email": "login@example.com", "password": "testpass123"})

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert len(data["token"]) > 0

    profile = client.get("/api/profile", headers={"Authorization": f"Bearer {data['token']}"})
    assert profile.status_code == 200
    assert profile.json()["id"] == user.id


def test_login_wrong_password(client, make_user):
    make_user(email="login@example.com")
    response = client.post("/api/login", json={"email": "login@example.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_login_unknown_user(client):
    response = client.post("/api/login", json={"email": "nobody@example.com", "password": "testpass123"})
    assert response.status_code == 401


def test_profile_requires_token(client):
    response = client.get("/api/profile")
    assert response.status_code == 401
    assert response.json() == {"error": "No authorization token provided"}


def test_profile_rejects_bad_token(client):
    response = client.get("/api/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid token"}


def test_profile_update(client, make_user, auth_headers):
    user = make_user()
    response = client.post(
        "/api/profile/update",
        json={"nickname": "Sam", "timezone": "Europe/Helsinki", "info": "Lives in Tampere"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    data = response.json()
    assert data["nickname"] == "Sam"
    assert data["timezone"] == "Europe/Helsinki"


def test_profile_update_rejects_unknown_timezone(client, make_user, auth_headers):
    user = make_user()
    response = client.post("/api/profile/update", json={"timezone": "Mars/Olympus"}, headers=auth_headers(user))
    assert response.status_code == 400


def test_profile_update_rejects_foreign_preferred_number(client, make_user, auth_headers):
    user = make_user()
    response = client.post(
        "/api/profile/update", json={"preferred_number": "+19999999999"}, headers=auth_headers(user)
    )
    assert response.status_code == 400


def test_profile_update_phone_change_resets_verification(client, db, make_user, auth_headers):
    user = make_user(verified=True)
    response = client.post(
        "/api/profile/update", json={"phone_number": "+358409999999"}, headers=auth_headers(user)
    )
    assert response.status_code == 200
    assert response.json()["verified"] is False


def test_notify_toggle(client, db, make_user, auth_headers):
    user = make_user()
    response = client.post("/api/profile/notify", json={"notify": False}, headers=auth_headers(user))
    assert response.status_code == 200
    db.expire_all()
    assert db.get(User, user.id).notify is False


def test_delete_profile(client, db, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    assert client.delete("/api/profile", headers=headers).status_code == 200
    db.expire_all()
    assert db.query(User).filter(User.id == user.id).first() is None
    # The token no longer maps to a user
    assert client.get("/api/profile", headers=headers).status_code == 401
