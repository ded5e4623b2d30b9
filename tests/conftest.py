from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

from main import create_app
from settings import Settings

ADMIN_INBOX = "orders@example.com"


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html, text=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})

    def to(self, address):
        return [m for m in self.sent if m["to"] == address or (isinstance(m["to"], list) and address in m["to"])]


class FailingMailer:
    def send(self, to, subject, html, text=None):
        raise ConnectionRefusedError("smtp down")


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        log_level="WARNING",
        jwt_access_secret="test-access",
        jwt_refresh_secret="test-refresh",
        bcrypt_rounds=4,
        admin_emails=[ADMIN_INBOX],
        auth_rate_limit_max=1000,
        site_url="https://shop.test",
        frontend_url="https://shop.test",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(settings, db, mailer):
    return create_app(settings=settings, db=db, mailer=mailer)


@pytest.fixture
def ctx(app):
    return app.state.ctx


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def register(client, email="ana@example.com", password="secret123", first_name="Ana", last_name="Lopez"):
    resp = client.post("/auth/register", json={
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return data["access_token"], data["user"]


def login(client, email, password="secret123"):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["access_token"]


@pytest.fixture
def customer(client):
    token, user = register(client)
    return {"token": token, "user": user, "headers": auth(token)}


@pytest.fixture
def admin(client, db):
    _, user = register(client, email="boss@example.com", first_name="Boss", last_name="Admin")
    db["user"].update_one({"email": "boss@example.com"}, {"$set": {"is_admin": True}})
    token = login(client, "boss@example.com")
    return {"token": token, "user": user, "headers": auth(token)}


def add_product(db, **overrides):
    now = datetime.utcnow()
    doc = {
        "name": "Silk Robe",
        "description": "Soft robe",
        "price": 100.0,
        "images": ["https://img.test/robe.jpg"],
        "category": "Lingerie",
        "stock": 10,
        "is_active": True,
        "featured": False,
        "is_on_sale": False,
        "specifications": {},
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    result = db["product"].insert_one(doc)
    return str(result.inserted_id)
