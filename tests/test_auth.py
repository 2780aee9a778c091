# Auth and account self-service test suite.
from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import PASSWORD, auth_headers, signup


def test_register_login_and_me(client: TestClient):
    r = client.post(
        "/auth/register",
        json={"name": "Ada", "email": "  Ada@Example.EDU ", "password": PASSWORD, "campus": "North"},
    )
    assert r.status_code == 201, r.text
    user = r.json()["user"]
    assert user["email"] == "ada@example.edu"
    assert user["role"] == "user"
    assert user["rating"] == 0.0
    assert "password_hash" not in user

    r = client.post("/auth/register", json={"name": "Ada", "email": "ada@example.edu", "password": PASSWORD})
    assert r.status_code == 409
    assert r.json()["code"] == "email_taken"

    r = client.post("/auth/login", json={"email": "ada@example.edu", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_CREDENTIALS"

    r = client.post("/auth/login", json={"email": "ada@example.edu", "password": PASSWORD})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    r = client.get("/auth/me", headers=auth_headers(token))
    assert r.json()["email"] == "ada@example.edu"


def test_missing_or_bad_token(client: TestClient):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.json()["code"] == "NO_TOKEN"
    r = client.get("/auth/me", headers=auth_headers("not-a-jwt"))
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_TOKEN"


def test_change_password(client: TestClient):
    token, _ = signup(client, "ada@example.edu")
    r = client.post(
        "/auth/change-password",
        headers=auth_headers(token),
        json={"current_password": "nope-nope", "new_password": "brand-new-pass"},
    )
    assert r.status_code == 400

    r = client.post(
        "/auth/change-password",
        headers=auth_headers(token),
        json={"current_password": PASSWORD, "new_password": "brand-new-pass"},
    )
    assert r.status_code == 204, r.text
    assert client.post("/auth/login", json={"email": "ada@example.edu", "password": "brand-new-pass"}).status_code == 200


def test_profile_update_and_public_view(client: TestClient):
    token, user = signup(client, "ada@example.edu", "Ada")
    r = client.put("/api/v1/users/profile", headers=auth_headers(token), json={"bio": "CS major", "campus": "South"})
    assert r.status_code == 200, r.text
    assert r.json()["bio"] == "CS major"

    public = client.get(f"/api/v1/users/{user['id']}").json()
    assert public["campus"] == "South"
    assert (public["email"], public["phone"]) == (None, None)
    assert client.get("/api/v1/users/9999").status_code == 404


def test_preferences_control_public_contact(client: TestClient):
    token, user = signup(client, "ada@example.edu", "Ada")
    client.put("/api/v1/users/profile", headers=auth_headers(token), json={"phone": "555-0100"})

    r = client.get("/api/v1/users/preferences", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    assert r.json() == {
        "notification_preferences": {"email": True, "sms": False},
        "privacy_preferences": {"show_email": False, "show_phone": False},
    }

    # Partial update: unspecified flags keep their value
    r = client.put(
        "/api/v1/users/preferences",
        headers=auth_headers(token),
        json={"notification_preferences": {"sms": True}, "privacy_preferences": {"show_email": True}},
    )
    assert r.status_code == 200, r.text
    assert r.json()["notification_preferences"] == {"email": True, "sms": True}
    assert r.json()["privacy_preferences"] == {"show_email": True, "show_phone": False}

    public = client.get(f"/api/v1/users/{user['id']}").json()
    assert public["email"] == "ada@example.edu"
    assert public["phone"] is None

    client.put("/api/v1/users/preferences", headers=auth_headers(token), json={"privacy_preferences": {"show_phone": True}})
    assert client.get(f"/api/v1/users/{user['id']}").json()["phone"] == "555-0100"

    assert client.get("/api/v1/users/preferences").status_code == 401


def test_self_delete_requires_password(client: TestClient):
    token, user = signup(client, "ada@example.edu")
    r = client.post("/api/v1/users/me/delete", headers=auth_headers(token), json={"password": "wrong-one"})
    assert r.status_code == 400
    assert r.json()["code"] == "wrong_password"

    r = client.post("/api/v1/users/me/delete", headers=auth_headers(token), json={"password": PASSWORD})
    assert r.status_code == 204, r.text
    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 401


def test_healthz(client: TestClient):
    assert client.get("/healthz").json() == {"status": "ok"}
