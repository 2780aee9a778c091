# Reports API test suite: filing against items or users, and the staff review workflow.
from __future__ import annotations

from fastapi.testclient import TestClient

from helpers import auth_headers, create_item, signup


def file_report(client: TestClient, token: str, **target):
    payload = {"reason": "Scam", "description": "Asked for payment off-platform", **target}
    return client.post("/api/v1/reports", headers=auth_headers(token), json=payload)


def test_report_targets(client: TestClient):
    owner_token, owner = signup(client, "owner@example.edu")
    item = create_item(client, owner_token)
    reporter_token, reporter = signup(client, "reporter@example.edu")

    r = file_report(client, reporter_token, reported_item_id=item["id"])
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "pending"
    assert file_report(client, reporter_token, reported_user_id=owner["id"]).status_code == 201

    # Exactly one target
    assert file_report(client, reporter_token).status_code == 422
    assert file_report(client, reporter_token, reported_item_id=item["id"], reported_user_id=owner["id"]).status_code == 422
    # Not yourself, not your own item
    assert file_report(client, reporter_token, reported_user_id=reporter["id"]).status_code == 400
    assert file_report(client, owner_token, reported_item_id=item["id"]).status_code == 400
    assert file_report(client, reporter_token, reported_user_id=9999).status_code == 404

    r = client.get("/api/v1/reports/mine", headers=auth_headers(reporter_token))
    assert len(r.json()) == 2


def test_staff_workflow(client: TestClient):
    admin_token, admin = signup(client, "admin@example.edu", role="admin")
    owner_token, owner = signup(client, "owner@example.edu")
    reporter_token, _ = signup(client, "reporter@example.edu")
    report = file_report(client, reporter_token, reported_user_id=owner["id"]).json()

    r = client.put(f"/api/v1/admin/reports/{report['id']}", headers=auth_headers(reporter_token), json={"status": "resolved"})
    assert r.status_code == 403

    r = client.get("/api/v1/admin/reports?status=pending", headers=auth_headers(admin_token))
    assert [x["id"] for x in r.json()] == [report["id"]]

    r = client.put(f"/api/v1/admin/reports/{report['id']}", headers=auth_headers(admin_token), json={"status": "reviewing"})
    assert r.status_code == 200, r.text
    assert r.json()["resolved_by_id"] is None

    r = client.put(
        f"/api/v1/admin/reports/{report['id']}",
        headers=auth_headers(admin_token),
        json={"status": "resolved", "admin_notes": "User warned"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "resolved"
    assert body["admin_notes"] == "User warned"
    assert body["resolved_by_id"] == admin["id"]
    assert body["resolved_at"] is not None

    # Resolved is final
    r = client.put(f"/api/v1/admin/reports/{report['id']}", headers=auth_headers(admin_token), json={"status": "dismissed"})
    assert r.status_code == 409
