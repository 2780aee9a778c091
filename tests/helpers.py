# Shared HTTP helpers for the API test modules.
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional, Tuple

from fastapi.testclient import TestClient

from campuscrate.db import SessionLocal
from campuscrate.services.lending import today
from campuscrate import models

PASSWORD = "changeme123"


# Helper: register a user and return (access_token, user JSON); role is forced in the DB
def signup(client: TestClient, email: str, name: str = "Student", role: Optional[str] = None) -> Tuple[str, dict]:
    r = client.post("/auth/register", json={"name": name, "email": email, "password": PASSWORD, "campus": "North"})
    assert r.status_code == 201, r.text
    data = r.json()
    if role:
        set_user_fields(data["user"]["id"], role=role)
        data["user"]["role"] = role
    return data["access_token"], data["user"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def days_from_now(n: int) -> date:
    return today() + timedelta(days=n)


def create_item(client: TestClient, token: str, title: str = "Camping tent", daily_rate_cents: int = 100, **fields) -> dict:
    payload = {"title": title, "category": "Outdoors", "daily_rate_cents": daily_rate_cents, **fields}
    r = client.post("/api/v1/items", headers=auth_headers(token), json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def request_item(client: TestClient, token: str, item_id: int, start: date, end: date):
    return client.post(
        "/api/v1/lending-requests",
        headers=auth_headers(token),
        json={"item_id": item_id, "start_date": start.isoformat(), "end_date": end.isoformat()},
    )


def set_user_fields(user_id: int, **fields) -> None:
    db = SessionLocal()
    try:
        user = db.get(models.User, user_id)
        assert user is not None
        for key, value in fields.items():
            setattr(user, key, value)
        db.add(user)
        db.commit()
    finally:
        db.close()


def set_request_fields(request_id: int, **fields) -> None:
    """Force a lending request into a given state, bypassing the transition rules."""
    db = SessionLocal()
    try:
        obj = db.get(models.LendingRequest, request_id)
        assert obj is not None
        for key, value in fields.items():
            setattr(obj, key, value)
        db.add(obj)
        db.commit()
    finally:
        db.close()


def insert_request(item_id: int, borrower_id: int, lender_id: int, start: date, end: date, status: str = "pending") -> int:
    db = SessionLocal()
    try:
        obj = models.LendingRequest(
            item_id=item_id,
            borrower_id=borrower_id,
            lender_id=lender_id,
            start_date=start,
            end_date=end,
            total_cost_cents=0,
            status=status,
        )
        db.add(obj)
        db.commit()
        return obj.id
    finally:
        db.close()


def completed_rental(client: TestClient, owner_token: str, borrower_token: str, daily_rate_cents: int = 100) -> dict:
    """Create an item, book it and force the booking to completed. Returns the request JSON."""
    item = create_item(client, owner_token, daily_rate_cents=daily_rate_cents)
    r = request_item(client, borrower_token, item["id"], days_from_now(1), days_from_now(3))
    assert r.status_code == 201, r.text
    req = r.json()
    set_request_fields(req["id"], status="completed")
    return req
