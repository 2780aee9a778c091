# Item catalog API test suite: listing filters, ownership checks and soft deletion.
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from campuscrate import models
from campuscrate.db import SessionLocal
from campuscrate.errors import ValidationError
from campuscrate.services import catalog

from helpers import auth_headers, create_item, signup


def test_browse_filters_and_pagination(client: TestClient):
    token, owner = signup(client, "owner@example.edu")
    create_item(client, token, "Camping tent", 500, tags=["outdoor", "summer"])
    create_item(client, token, "Graphing calculator", 200, category="Electronics")
    create_item(client, token, "Mini fridge", 800, category="Appliances", campus="South")

    r = client.get("/api/v1/items?limit=2&sort_by=daily_rate_cents&sort_order=asc")
    assert r.status_code == 200, r.text
    page = r.json()
    assert page["total_items"] == 3
    assert page["total_pages"] == 2
    assert page["current_page"] == 1
    assert [i["title"] for i in page["items"]] == ["Graphing calculator", "Camping tent"]

    r = client.get("/api/v1/items?category=Electronics")
    assert [i["title"] for i in r.json()["items"]] == ["Graphing calculator"]
    r = client.get("/api/v1/items?min_price=300&max_price=600")
    assert [i["title"] for i in r.json()["items"]] == ["Camping tent"]
    r = client.get("/api/v1/items?search=summer")
    assert [i["title"] for i in r.json()["items"]] == ["Camping tent"]
    r = client.get("/api/v1/items?campus=South")
    assert [i["title"] for i in r.json()["items"]] == ["Mini fridge"]

    assert client.get("/api/v1/items?sort_by=password").status_code == 400
    assert client.get("/api/v1/items?owner=me").status_code == 401
    r = client.get("/api/v1/items?owner=me", headers=auth_headers(token))
    assert r.json()["total_items"] == 3
    assert len(client.get(f"/api/v1/users/{owner['id']}/items").json()) == 3


def test_view_counts_and_owner_only_updates(client: TestClient):
    token, _ = signup(client, "owner@example.edu")
    other_token, _ = signup(client, "other@example.edu")
    item = create_item(client, token)
    assert item["view_count"] == 0

    client.get(f"/api/v1/items/{item['id']}")
    r = client.get(f"/api/v1/items/{item['id']}")
    assert r.json()["view_count"] == 2

    r = client.put(f"/api/v1/items/{item['id']}", headers=auth_headers(other_token), json={"title": "Mine now"})
    assert r.status_code == 403

    r = client.put(
        f"/api/v1/items/{item['id']}",
        headers=auth_headers(token),
        json={"title": "Two-person tent", "daily_rate_cents": 650},
    )
    assert r.status_code == 200, r.text
    assert r.json()["title"] == "Two-person tent"
    assert r.json()["daily_rate_cents"] == 650

    # Lending bounds stay consistent across partial updates
    r = client.put(f"/api/v1/items/{item['id']}", headers=auth_headers(token), json={"min_lending_days": 5, "max_lending_days": 2})
    assert r.status_code == 400
    r = client.put(f"/api/v1/items/{item['id']}", headers=auth_headers(token), json={})
    assert r.status_code == 400


def test_deleted_item_disappears_from_listings(client: TestClient):
    token, _ = signup(client, "owner@example.edu")
    other_token, _ = signup(client, "other@example.edu")
    item = create_item(client, token)

    assert client.delete(f"/api/v1/items/{item['id']}", headers=auth_headers(other_token)).status_code == 403
    assert client.delete(f"/api/v1/items/{item['id']}", headers=auth_headers(token)).status_code == 204

    assert client.get(f"/api/v1/items/{item['id']}").status_code == 404
    assert client.get("/api/v1/items").json()["total_items"] == 0
    assert client.get("/api/v1/items/mine", headers=auth_headers(token)).json() == []
    assert client.delete(f"/api/v1/items/{item['id']}", headers=auth_headers(token)).status_code == 404


def test_update_cannot_null_required_fields(client: TestClient):
    token, _ = signup(client, "owner@example.edu")
    item = create_item(client, token, max_lending_days=4, campus="North")
    url = f"/api/v1/items/{item['id']}"

    r = client.put(url, headers=auth_headers(token), json={"title": None})
    assert r.status_code == 422
    r = client.put(url, headers=auth_headers(token), json={"daily_rate_cents": None, "category": "Tools"})
    assert r.status_code == 422
    r = client.put(url, headers=auth_headers(token), json={"title": "   "})
    assert r.status_code == 422

    # Optional columns can still be cleared
    r = client.put(url, headers=auth_headers(token), json={"campus": None, "max_lending_days": None})
    assert r.status_code == 200, r.text
    assert (r.json()["campus"], r.json()["max_lending_days"]) == (None, None)

    r = client.put(url, headers=auth_headers(token), json={"title": "  Dome tent  "})
    assert r.json()["title"] == "Dome tent"


def test_update_service_refuses_nulls(client: TestClient):
    token, owner = signup(client, "owner@example.edu")
    item = create_item(client, token)

    db = SessionLocal()
    try:
        user = db.get(models.User, owner["id"])
        with pytest.raises(ValidationError) as exc:
            catalog.update_item(db, user, item["id"], {"title": None, "min_lending_days": None})
        assert exc.value.extra["fields"] == ["min_lending_days", "title"]
    finally:
        db.close()
    assert client.get(f"/api/v1/items/{item['id']}").json()["title"] == item["title"]
