# Moderation API test suite: role policy, last-holder invariants, bans, deactivation and hard deletion.
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from helpers import (
    PASSWORD,
    auth_headers,
    completed_rental,
    create_item,
    days_from_now,
    request_item,
    set_user_fields,
    signup,
)


def test_regular_users_are_kept_out_of_admin_routes(client: TestClient):
    token, _ = signup(client, "user@example.edu")
    r = client.get("/api/v1/admin/users", headers=auth_headers(token))
    assert r.status_code == 403
    assert r.json()["code"] == "staff_only"
    assert client.get("/api/v1/admin/users").status_code == 401


def test_admin_moderates_users_but_not_peers(client: TestClient):
    admin_token, admin = signup(client, "admin@example.edu", role="admin")
    _, peer = signup(client, "admin2@example.edu", role="admin")
    _, manager = signup(client, "manager@example.edu", role="manager")
    _, user = signup(client, "user@example.edu")

    r = client.post(f"/api/v1/admin/users/{peer['id']}/ban", headers=auth_headers(admin_token))
    assert r.status_code == 403
    assert r.json()["code"] == "policy_denied"
    r = client.put(f"/api/v1/admin/users/{manager['id']}/active", headers=auth_headers(admin_token), json={"value": False})
    assert r.status_code == 403

    # Role changes are manager-only
    r = client.put(f"/api/v1/admin/users/{user['id']}/role", headers=auth_headers(admin_token), json={"role": "admin"})
    assert r.status_code == 403

    r = client.put(f"/api/v1/admin/users/{user['id']}/verified", headers=auth_headers(admin_token), json={"value": True})
    assert r.status_code == 200, r.text
    assert r.json()["is_verified"] is True

    r = client.post(f"/api/v1/admin/users/{admin['id']}/ban", headers=auth_headers(admin_token))
    assert r.status_code == 403
    assert r.json()["code"] == "self_action"

    r = client.get("/api/v1/admin/users?role=admin", headers=auth_headers(admin_token))
    assert {u["id"] for u in r.json()} == {admin["id"], peer["id"]}


def test_ban_and_unban_with_distinct_denial(client: TestClient):
    admin_token, _ = signup(client, "admin@example.edu", role="admin")
    user_token, user = signup(client, "user@example.edu")
    until = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()

    r = client.post(
        f"/api/v1/admin/users/{user['id']}/ban",
        headers=auth_headers(admin_token),
        json={"reason": "spam", "until": until},
    )
    assert r.status_code == 200, r.text
    assert r.json()["is_banned"] is True

    r = client.get("/auth/me", headers=auth_headers(user_token))
    assert r.status_code == 403
    body = r.json()
    assert body["code"] == "ACCOUNT_BANNED"
    assert body["reason"] == "spam"
    assert body["until"] is not None

    r = client.post("/auth/login", json={"email": "user@example.edu", "password": PASSWORD})
    assert r.status_code == 403

    r = client.post(f"/api/v1/admin/users/{user['id']}/unban", headers=auth_headers(admin_token))
    assert r.status_code == 200, r.text
    assert client.get("/auth/me", headers=auth_headers(user_token)).status_code == 200

    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    r = client.post(f"/api/v1/admin/users/{user['id']}/ban", headers=auth_headers(admin_token), json={"until": past})
    assert r.status_code == 400


def test_deactivated_account_is_refused(client: TestClient):
    admin_token, _ = signup(client, "admin@example.edu", role="admin")
    user_token, user = signup(client, "user@example.edu")

    r = client.put(f"/api/v1/admin/users/{user['id']}/active", headers=auth_headers(admin_token), json={"value": False})
    assert r.status_code == 200, r.text
    r = client.get("/auth/me", headers=auth_headers(user_token))
    assert r.status_code == 403
    assert r.json()["code"] == "ACCOUNT_DEACTIVATED"

    r = client.put(f"/api/v1/admin/users/{user['id']}/active", headers=auth_headers(admin_token), json={"value": True})
    assert r.status_code == 200
    assert client.get("/auth/me", headers=auth_headers(user_token)).status_code == 200


# The platform never loses its last active manager, nor its last active admin
def test_last_manager_cannot_leave(client: TestClient):
    manager_token, manager = signup(client, "manager@example.edu", role="manager")

    r = client.put(f"/api/v1/admin/users/{manager['id']}/role", headers=auth_headers(manager_token), json={"role": "user"})
    assert r.status_code == 403
    assert r.json()["code"] == "self_action"

    r = client.post("/api/v1/users/me/delete", headers=auth_headers(manager_token), json={"password": PASSWORD})
    assert r.status_code == 409
    assert r.json()["code"] == "invariant_violation"
    assert client.get("/auth/me", headers=auth_headers(manager_token)).status_code == 200

    # With a second manager the first may go
    signup(client, "manager2@example.edu", role="manager")
    r = client.post("/api/v1/users/me/delete", headers=auth_headers(manager_token), json={"password": PASSWORD})
    assert r.status_code == 204, r.text
    assert client.get(f"/api/v1/users/{manager['id']}").status_code == 404


def test_manager_role_changes_respect_last_holder(client: TestClient):
    manager_token, manager = signup(client, "manager@example.edu", role="manager")
    _, admin = signup(client, "admin@example.edu", role="admin")
    _, user = signup(client, "user@example.edu")

    # Banning the only admin would leave none
    r = client.post(f"/api/v1/admin/users/{admin['id']}/ban", headers=auth_headers(manager_token))
    assert r.status_code == 409
    assert r.json()["code"] == "invariant_violation"

    r = client.put(f"/api/v1/admin/users/{user['id']}/role", headers=auth_headers(manager_token), json={"role": "admin"})
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "admin"

    r = client.post(f"/api/v1/admin/users/{admin['id']}/ban", headers=auth_headers(manager_token))
    assert r.status_code == 200, r.text

    # Promote a second manager, who can then demote the first
    r = client.put(f"/api/v1/admin/users/{user['id']}/role", headers=auth_headers(manager_token), json={"role": "manager"})
    assert r.status_code == 200, r.text
    login = client.post("/auth/login", json={"email": "user@example.edu", "password": PASSWORD}).json()
    r = client.put(
        f"/api/v1/admin/users/{manager['id']}/role",
        headers=auth_headers(login["access_token"]),
        json={"role": "user"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "user"

    # The demoted account lost staff access immediately
    r = client.get("/api/v1/admin/users", headers=auth_headers(manager_token))
    assert r.status_code == 403


def test_staff_item_removal_cancels_open_requests(client: TestClient):
    admin_token, _ = signup(client, "admin@example.edu", role="admin")
    owner_token, _ = signup(client, "owner@example.edu")
    borrower_token, _ = signup(client, "borrower@example.edu")
    item = create_item(client, owner_token)
    req = request_item(client, borrower_token, item["id"], days_from_now(1), days_from_now(2)).json()

    r = client.put(f"/api/v1/admin/items/{item['id']}/active", headers=auth_headers(admin_token), json={"value": False})
    assert r.status_code == 200, r.text
    assert r.json()["is_active"] is False

    r = client.get(f"/api/v1/lending-requests/{req['id']}", headers=auth_headers(borrower_token))
    assert r.json()["status"] == "cancelled"
    assert r.json()["cancel_reason"] == "removed_by_moderator"

    r = client.get("/api/v1/admin/items?is_active=false", headers=auth_headers(admin_token))
    assert [i["id"] for i in r.json()] == [item["id"]]

    r = client.put(f"/api/v1/admin/items/{item['id']}/active", headers=auth_headers(admin_token), json={"value": True})
    assert r.status_code == 200
    assert client.get(f"/api/v1/items/{item['id']}").status_code == 200


# Hard delete removes the account's data and refreshes counterparts' ratings
def test_user_deletion_cascades(client: TestClient):
    admin_token, _ = signup(client, "admin@example.edu", role="admin")
    owner_token, owner = signup(client, "owner@example.edu")
    borrower_token, borrower = signup(client, "borrower@example.edu")

    req = completed_rental(client, owner_token, borrower_token)
    r = client.post(
        "/api/v1/reviews",
        headers=auth_headers(owner_token),
        json={"lending_request_id": req["id"], "reviewee_id": borrower["id"], "rating": 2},
    )
    assert r.status_code == 201, r.text
    assert client.get(f"/api/v1/users/{borrower['id']}").json()["review_count"] == 1

    r = client.delete(f"/api/v1/admin/users/{owner['id']}", headers=auth_headers(admin_token))
    assert r.status_code == 204, r.text

    assert client.get(f"/api/v1/users/{owner['id']}").status_code == 404
    assert client.get(f"/api/v1/items/{req['item_id']}").status_code == 404
    assert client.get(f"/api/v1/lending-requests/{req['id']}", headers=auth_headers(borrower_token)).status_code == 404
    profile = client.get(f"/api/v1/users/{borrower['id']}").json()
    assert (profile["rating"], profile["review_count"]) == (0.0, 0)


def test_expired_ban_no_longer_denies_access(client: TestClient):
    admin_token, _ = signup(client, "admin@example.edu", role="admin")
    user_token, user = signup(client, "user@example.edu")
    until = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    r = client.post(f"/api/v1/admin/users/{user['id']}/ban", headers=auth_headers(admin_token), json={"until": until})
    assert r.status_code == 200, r.text
    assert client.get("/auth/me", headers=auth_headers(user_token)).status_code == 403

    set_user_fields(user["id"], banned_until=datetime.now(timezone.utc) - timedelta(minutes=1))
    assert client.get("/auth/me", headers=auth_headers(user_token)).status_code == 200


# A manager whose temporary ban ran out counts toward the last-holder check again
def test_expired_ban_counts_as_active_holder(client: TestClient):
    manager_token, manager = signup(client, "manager@example.edu", role="manager")
    _, other = signup(client, "manager2@example.edu", role="manager")
    set_user_fields(manager["id"], is_banned=True, banned_until=datetime.now(timezone.utc) - timedelta(days=1))

    r = client.put(f"/api/v1/admin/users/{other['id']}/role", headers=auth_headers(manager_token), json={"role": "user"})
    assert r.status_code == 200, r.text
    assert r.json()["role"] == "user"
