import json

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import services
from conftest import register
from database import SessionLocal
from models import Setting, User


def test_defaults_seeded_at_registration(client, auth):
    resp = client.get("/api/settings", headers=auth)
    assert resp.status_code == 200
    assert resp.json() == {"monthly_budget": "1000", "currency": "USD", "default_category": "Others"}


def test_partial_update_keeps_other_keys(client, auth):
    resp = client.put("/api/settings", json={"currency": "INR"}, headers=auth)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Settings updated successfully"}
    assert client.get("/api/settings", headers=auth).json() == {
        "monthly_budget": "1000",
        "currency": "INR",
        "default_category": "Others",
    }


def test_update_is_idempotent(client, auth):
    payload = {"monthly_budget": 1500, "custom_categories": ["Pets", "Gym"]}
    client.put("/api/settings", json=payload, headers=auth)
    once = client.get("/api/settings", headers=auth).json()
    client.put("/api/settings", json=payload, headers=auth)
    assert client.get("/api/settings", headers=auth).json() == once
    assert once["monthly_budget"] == "1500"
    assert json.loads(once["custom_categories"]) == ["Pets", "Gym"]


def test_invalid_update_writes_nothing(client, auth):
    resp = client.put("/api/settings", json={"monthly_budget": "2000", "currency": "DOGE"}, headers=auth)
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"
    assert client.get("/api/settings", headers=auth).json()["monthly_budget"] == "1000"


def test_body_must_be_an_object(client, auth):
    resp = client.put("/api/settings", json=["currency", "USD"], headers=auth)
    assert resp.status_code == 400


def test_settings_are_per_user(client, auth):
    bob = register(client, email="bob@example.com", name="Bob")
    client.put("/api/settings", json={"currency": "GBP", "theme": "dark"}, headers=bob)
    assert client.get("/api/settings", headers=auth).json()["currency"] == "USD"
    assert "theme" not in client.get("/api/settings", headers=auth).json()
    assert client.get("/api/settings", headers=bob).json()["theme"] == "dark"


def test_export(client, auth, add_expense):
    add_expense(9.99, "Food", "2024-01-01")
    add_expense(20, "Bills", "2024-01-02")
    body = client.get("/api/export", headers=auth).json()
    assert [e["amount"] for e in body["expenses"]] == [20, 9.99]
    assert body["settings"]["currency"] == "USD"
    assert "exported_at" in body


def setting_rows(email="ann@example.com"):
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).one()
        rows = db.query(Setting).filter(Setting.user_id == user.id).all()
        return {r.key: (r.value, r.created_at, r.updated_at) for r in rows}
    finally:
        db.close()


def test_update_keeps_created_at_and_refreshes_updated_at(client, auth):
    before = setting_rows()
    client.put("/api/settings", json={"currency": "EUR", "theme": "dark"}, headers=auth)
    middle = setting_rows()
    client.put("/api/settings", json={"currency": "AED"}, headers=auth)
    after = setting_rows()

    value, created, updated = middle["currency"]
    assert value == "EUR"
    assert created == before["currency"][1]
    assert updated >= before["currency"][2]
    assert after["currency"][1] == created
    assert after["currency"][2] >= updated

    # new key: fresh timestamps, untouched by the second update
    _, theme_created, theme_updated = middle["theme"]
    assert theme_created == theme_updated
    assert theme_created >= before["currency"][1]
    assert after["theme"] == middle["theme"]
    assert after["monthly_budget"] == before["monthly_budget"]


def test_store_failure_rolls_back_every_key(client, auth, monkeypatch):
    before = client.get("/api/settings", headers=auth).json()

    def failing_commit(self):
        # rows reach the database, then the commit itself fails
        self.flush()
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(Session, "commit", failing_commit)
    resp = client.put("/api/settings", json={"currency": "EUR", "monthly_budget": "50", "theme": "dark"},
                      headers=auth)
    monkeypatch.undo()

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal_error", "message": "Failed to update settings"}
    assert client.get("/api/settings", headers=auth).json() == before


def test_key_created_concurrently_is_overwritten(client, auth, monkeypatch):
    real_merge = services.merge_settings
    raced = []

    def merge_after_another_request(existing, incoming):
        if not raced:
            raced.append(True)
            db = SessionLocal()
            try:
                user = db.query(User).filter(User.email == "ann@example.com").one()
                db.add(Setting(user_id=user.id, key="theme", value="light"))
                db.commit()
            finally:
                db.close()
        return real_merge(existing, incoming)

    monkeypatch.setattr(services, "merge_settings", merge_after_another_request)
    resp = client.put("/api/settings", json={"theme": "dark", "currency": "GBP"}, headers=auth)

    assert resp.status_code == 200
    settings = client.get("/api/settings", headers=auth).json()
    assert settings["theme"] == "dark"
    assert settings["currency"] == "GBP"
    assert len(setting_rows()) == 4
