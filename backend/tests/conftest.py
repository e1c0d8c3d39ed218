import itertools

import pytest
from fastapi.testclient import TestClient

from thesis_api import models
from thesis_api.config import Settings
from thesis_api.database import Database
from thesis_api.main import create_app
from thesis_api.services import PWD_CTX


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Fresh SQLite database and upload directory for every test."""
    monkeypatch.setenv("ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("RATE_LIMIT_MAX", "1000")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return Settings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client, app) -> Database:
    return app.state.db


@pytest.fixture
def register(client):
    """Register a user through the API; returns (user json, auth headers)."""
    counter = itertools.count(1)

    def _register(role="STUDENT", pack_id=None, **extra):
        n = next(counter)
        body = {
            "email": f"user{n}@example.com",
            "password": "secret123",
            "firstName": "Test",
            "lastName": f"User{n}",
            "role": role,
        }
        if pack_id:
            body["packId"] = pack_id
        body.update(extra)
        r = client.post("/api/auth/register", json=body)
        assert r.status_code == 201, r.text
        data = r.json()
        return data["user"], auth_headers(data["token"])

    return _register


@pytest.fixture
def admin(client, db):
    """Admins cannot self-register, so one is inserted directly."""
    with db.session() as session:
        user = models.User(
            email="admin@example.com",
            password_hash=PWD_CTX.hash("admin123"),
            first_name="Ada",
            last_name="Admin",
            role=models.Role.ADMIN,
        )
        session.add(user)
        session.commit()
        admin_id = user.id
    r = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "admin123"})
    assert r.status_code == 200, r.text
    return {"id": admin_id}, auth_headers(r.json()["token"])


@pytest.fixture
def make_pack(client, admin):
    _, headers = admin

    def _make(price=100000, installment1=None, installment2=None, name="Pack Test", **extra):
        body = {"name": name, "price": price, "features": ["coaching"], **extra}
        if installment1 is not None:
            body["installment1"] = installment1
            body["installment2"] = installment2
        r = client.post("/api/packs", json=body, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()["pack"]

    return _make
