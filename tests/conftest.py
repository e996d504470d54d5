"""
Pytest configuration and shared fixtures.
"""

from unittest.mock import patch

import pytest

from app import create_app
from models import db
from models.booking import Booking
from models.shop import Shop

PASSWORD = "correct-horse-9"


@pytest.fixture
def app(tmp_path):
    """Application bound to a throwaway SQLite file."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "test.db"),
        "AUTO_CREATE_TABLES": True,
        "BCRYPT_ROUNDS": 4,
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "SMTP_HOST": None,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sent_emails():
    """Capture notifications instead of talking to SMTP."""
    with patch("utils.emailer.send_email") as mock_send:
        yield mock_send


@pytest.fixture
def make_user(client):
    """Register + log in; returns (user_id, auth headers)."""

    def _make(email, full_name=None):
        resp = client.post("/auth/register", json={"email": email, "password": PASSWORD, "fullName": full_name})
        assert resp.status_code == 201, resp.get_json()
        user_id = resp.get_json()["id"]
        resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return user_id, {"Authorization": f"Bearer {resp.get_json()['token']}"}

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", "Shop Owner")


@pytest.fixture
def customer(make_user):
    return make_user("customer@example.com", "Ada Customer")


@pytest.fixture
def other_customer(make_user):
    return make_user("other@example.com", "Bob Other")


@pytest.fixture
def shop(client, owner):
    _, headers = owner
    resp = client.post("/shops", json={"name": "Fade Factory", "location": "Main St 1", "defaultPrice": 12.5}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


@pytest.fixture
def book(client, shop, customer):
    """Create a booking at the shared shop; returns the booking JSON."""

    def _book(headers=None, booking_date="2026-11-02", booking_time="10:00", **extra):
        payload = {
            "shopId": shop["id"],
            "serviceName": "Haircut",
            "bookingDate": booking_date,
            "bookingTime": booking_time,
        }
        payload.update(extra)
        resp = client.post("/bookings", json=payload, headers=headers or customer[1])
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["booking"]

    return _book


@pytest.fixture
def set_status(client, owner):
    """Walk a pending booking forward through the lifecycle as the shop owner."""
    path = {
        "pending": [],
        "approved": ["approved"],
        "confirmed": ["approved", "confirmed"],
        "inProgress": ["approved", "confirmed", "inProgress"],
        "completed": ["approved", "completed"],
        "cancelled": ["approved", "cancelled"],
        "rejected": ["rejected"],
    }

    def _set(booking_id, status):
        for step in path[status]:
            resp = client.patch(f"/bookings/{booking_id}/status", json={"status": step}, headers=owner[1])
            assert resp.status_code == 200, resp.get_json()

    return _set


@pytest.fixture
def queue_state(app):
    """(ledger counter, actual active count) for a shop."""

    def _state(shop_id):
        with app.app_context():
            shop = Shop.query.get(shop_id)
            active = Booking.query.filter(
                Booking.shop_id == shop_id,
                Booking.status.in_(["pending", "approved", "confirmed", "inProgress"]),
            ).count()
            return shop.current_queue_length, active

    return _state
