"""Pytest fixtures for storefront tests."""

import tempfile
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import create_token, hash_password
from config import Settings
from database import create_document
from main import create_app
from notifications import NotificationService
from schemas import Product, User


class RecordingTransport:
    """Mail transport double that keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, message):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append(message)


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db():
    """Point the database module at a fresh in-memory MongoDB."""
    mock_db = mongomock.MongoClient().storefront_test
    database.use_database(mock_db)
    yield mock_db
    database.use_database(None)


@pytest.fixture
def settings(temp_dir):
    return Settings(
        uploads_dir=str(temp_dir / "uploads"),
        pdf_dir=str(temp_dir / "pdfs"),
        jwt_secret="test-secret",
        admin_secret="test-admin-secret",
        backend_url="http://testserver",
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def app(db, settings, transport):
    application = create_app(settings)
    application.state.notifier = NotificationService.from_settings(settings, transport=transport)
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


def _make_account(settings, name, email, role="user", password="secret123"):
    uid = create_document("user", User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
    ))
    token = create_token(uid, settings)
    return {
        "id": uid,
        "name": name,
        "email": email,
        "password": password,
        "token": token,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture
def user(db, settings):
    return _make_account(settings, "Asha Patel", "asha@example.com")


@pytest.fixture
def other_user(db, settings):
    return _make_account(settings, "Ravi Shah", "ravi@example.com")


@pytest.fixture
def admin(db, settings):
    return _make_account(settings, "Store Admin", "admin@example.com", role="admin")


@pytest.fixture
def make_product(db):
    """Factory that inserts a product and returns its id."""

    def _make(name="Silk Saree", price=100.0, stock=10, category="Sarees", image=None):
        return create_document("product", {
            **Product(name=name, price=price, stock=stock, category=category).model_dump(),
            "image": image,
        })

    return _make


@pytest.fixture
def shipping():
    return {
        "shipping_info": {"name": "Asha Patel", "address": "12 Ring Road, Surat", "phone_no": "09876543210"},
        "payment_info": {"id": "pay_123", "status": "succeeded"},
    }


@pytest.fixture
def place_order(client, shipping):
    """Fill the caller's cart and check out, returning the response body."""

    def _place(account, product_id, quantity=2):
        resp = client.post(
            "/api/cart",
            json={"items": [{"product": product_id, "quantity": quantity}]},
            headers=account["headers"],
        )
        assert resp.status_code == 200
        resp = client.post("/api/orders/checkout", json=shipping, headers=account["headers"])
        assert resp.status_code == 201, resp.json()
        return resp.json()

    return _place
