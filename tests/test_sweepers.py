# Sweeper test suite: date-driven expiry, hand-over and completion of lending requests.
from __future__ import annotations

from fastapi.testclient import TestClient

from campuscrate.sweepers import sweep_lending_requests

from helpers import auth_headers, create_item, days_from_now, request_item, set_request_fields, signup


def test_sweeper_advances_due_requests(client: TestClient):
    owner_token, _ = signup(client, "owner@example.edu")
    item = create_item(client, owner_token)
    borrower_token, _ = signup(client, "borrower@example.edu")

    stale = request_item(client, borrower_token, item["id"], days_from_now(1), days_from_now(2)).json()
    due = request_item(client, borrower_token, item["id"], days_from_now(3), days_from_now(5)).json()
    ending = request_item(client, borrower_token, item["id"], days_from_now(6), days_from_now(8)).json()
    future = request_item(client, borrower_token, item["id"], days_from_now(10), days_from_now(12)).json()

    # Pending past its start, accepted on its start day, active on its end day
    set_request_fields(stale["id"], start_date=days_from_now(-1), end_date=days_from_now(0))
    set_request_fields(due["id"], status="accepted", start_date=days_from_now(0))
    set_request_fields(ending["id"], status="active", start_date=days_from_now(-3), end_date=days_from_now(0))

    counts = sweep_lending_requests()
    assert counts == {"expired": 1, "activated": 1, "completed": 1}

    def status_of(req):
        r = client.get(f"/api/v1/lending-requests/{req['id']}", headers=auth_headers(borrower_token))
        return r.json()["status"], r.json()["cancel_reason"]

    assert status_of(stale) == ("cancelled", "expired")
    assert status_of(due) == ("active", None)
    assert status_of(ending)[0] == "completed"
    assert status_of(future) == ("pending", None)

    # Idempotent once everything is settled
    assert sweep_lending_requests() == {"expired": 0, "activated": 0, "completed": 0}


def test_sweeper_accepts_a_reference_day(client: TestClient):
    owner_token, _ = signup(client, "owner@example.edu")
    item = create_item(client, owner_token)
    borrower_token, _ = signup(client, "borrower@example.edu")
    req = request_item(client, borrower_token, item["id"], days_from_now(2), days_from_now(4)).json()
    client.post(f"/api/v1/lending-requests/{req['id']}/accept", headers=auth_headers(owner_token))

    assert sweep_lending_requests(as_of=days_from_now(1))["activated"] == 0
    assert sweep_lending_requests(as_of=days_from_now(2))["activated"] == 1
    assert sweep_lending_requests(as_of=days_from_now(4))["completed"] == 1
