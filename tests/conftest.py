import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from database import Base, engine
from main import app


@pytest.fixture
def client():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c


def register(client, email="ann@example.com", name="Ann", password="secret123"):
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def auth(client):
    return register(client)


@pytest.fixture
def add_expense(client, auth):
    def _add(amount, category, date, description="", headers=None):
        resp = client.post(
            "/api/expenses",
            json={"amount": amount, "category": category, "date": date, "description": description},
            headers=headers or auth,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()
    return _add
