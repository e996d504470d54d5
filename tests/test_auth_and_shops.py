"""
Bearer-token identity, error mapping and the shop surface bookings hang off.
"""

from datetime import datetime, timedelta

import pytest

from models import db
from models.session import Session
from models.user import User

PASSWORD = "correct-horse-9"


class TestAuth:

    def test_register_login_me(self, client, customer):
        user_id, headers = customer

        resp = client.get("/auth/me", headers=headers)

        assert resp.status_code == 200
        assert resp.get_json()["id"] == user_id
        assert resp.get_json()["roles"] == ["CUSTOMER"]

    def test_duplicate_email(self, client, customer):
        resp = client.post("/auth/register", json={"email": "Customer@Example.com", "password": PASSWORD})
        assert resp.status_code == 409

    def test_short_password(self, client):
        resp = client.post("/auth/register", json={"email": "x@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_wrong_password(self, client, customer):
        resp = client.post("/auth/login", json={"email": "customer@example.com", "password": "nope-nope-nope"})
        assert resp.status_code == 401

    def test_missing_and_invalid_token(self, client):
        resp = client.get("/bookings/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Authentication required"

        resp = client.get("/bookings/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid or expired token"

    def test_logout_revokes_token(self, client, customer):
        _, headers = customer
        assert client.post("/auth/logout", headers=headers).status_code == 200
        assert client.get("/auth/me", headers=headers).status_code == 401

    def test_expired_token(self, app, client, customer):
        user_id, headers = customer
        with app.app_context():
            for sess in Session.query.filter_by(user_id=user_id).all():
                sess.expires_at = datetime.utcnow() - timedelta(seconds=1)
            db.session.commit()
        assert client.get("/auth/me", headers=headers).status_code == 401

    def test_update_profile(self, client, customer):
        _, headers = customer

        resp = client.patch("/auth/me", json={"fullName": "  Ada Lovelace ", "phoneNumber": "+252 61 000 0000"}, headers=headers)

        assert resp.status_code == 200
        assert resp.get_json()["fullName"] == "Ada Lovelace"
        assert resp.get_json()["phoneNumber"] == "+252 61 000 0000"
        assert client.get("/auth/me", headers=headers).get_json()["fullName"] == "Ada Lovelace"

        cleared = client.patch("/auth/me", json={"phoneNumber": None}, headers=headers).get_json()
        assert cleared["phoneNumber"] is None
        assert cleared["fullName"] == "Ada Lovelace"

    @pytest.mark.parametrize("payload", [{"fullName": ""}, {"fullName": 7}, {"phoneNumber": "9" * 31}])
    def test_update_profile_validation(self, client, customer, payload):
        assert client.patch("/auth/me", json=payload, headers=customer[1]).status_code == 400

    def test_update_profile_requires_token(self, client):
        assert client.patch("/auth/me", json={"fullName": "X"}).status_code == 401

    def test_non_object_body(self, client):
        assert client.post("/auth/register", json=["x@example.com"]).status_code == 400

    def test_grant_role_cli(self, app, client, customer):
        result = app.test_cli_runner().invoke(args=["grant-role", "customer@example.com", "admin"])

        assert "granted ADMIN" in result.output
        with app.app_context():
            user = User.query.filter_by(email="customer@example.com").first()
            assert {r.name for r in user.roles} == {"CUSTOMER", "ADMIN"}


class TestShops:

    def test_register_grants_owner_role(self, client, owner, shop):
        assert shop["currentQueueLength"] == 0
        assert shop["estimatedWaitTime"] == 0
        assert shop["defaultPrice"] == 12.5

        roles = client.get("/auth/me", headers=owner[1]).get_json()["roles"]
        assert "SHOP_OWNER" in roles

    def test_register_requires_fields(self, client, owner):
        resp = client.post("/shops", json={"name": "No Location"}, headers=owner[1])
        assert resp.status_code == 400

    def test_public_listing_and_lookup(self, client, shop):
        assert [s["id"] for s in client.get("/shops?name=fade").get_json()] == [shop["id"]]
        assert client.get("/shops?name=nothing").get_json() == []
        assert client.get(f"/shops/{shop['id']}").status_code == 200
        assert client.get("/shops/999").status_code == 404

    def test_my_shops(self, client, owner, customer, shop):
        assert len(client.get("/shops/me", headers=owner[1]).get_json()) == 1
        assert client.get("/shops/me", headers=customer[1]).get_json() == []

    def test_owner_edits_profile(self, client, shop, owner):
        resp = client.patch(
            f"/shops/{shop['id']}",
            json={"name": "Fade Factory II", "location": "Market Rd 4", "description": "Walk-ins welcome", "defaultPrice": "15"},
            headers=owner[1],
        )

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["name"] == "Fade Factory II"
        assert body["location"] == "Market Rd 4"
        assert body["description"] == "Walk-ins welcome"
        assert body["defaultPrice"] == 15.0

    def test_rename_keeps_booking_snapshot_and_counters(self, client, shop, book, owner, customer, queue_state):
        booking = book()

        resp = client.patch(
            f"/shops/{shop['id']}",
            json={"name": "Renamed Barbers", "currentQueueLength": 40, "estimatedWaitTime": 999},
            headers=owner[1],
        )

        assert resp.status_code == 200
        assert resp.get_json()["currentQueueLength"] == 1
        assert queue_state(shop["id"]) == (1, 1)
        after = client.get(f"/bookings/{booking['id']}", headers=customer[1]).get_json()
        assert after["shopName"] == "Fade Factory"
        assert book()["shopName"] == "Renamed Barbers"

    def test_deactivated_shop_is_hidden_and_unbookable(self, client, shop, owner, customer):
        client.patch(f"/shops/{shop['id']}", json={"isActive": False}, headers=owner[1])

        assert client.get(f"/shops/{shop['id']}").status_code == 404
        resp = client.post(
            "/bookings",
            json={"shopId": shop["id"], "serviceName": "Haircut", "bookingDate": "2026-11-02", "bookingTime": "10:00"},
            headers=customer[1],
        )
        assert resp.status_code == 404

    def test_edit_is_owner_only(self, client, shop, customer, owner):
        assert client.patch(f"/shops/{shop['id']}", json={"name": "Mine now"}, headers=customer[1]).status_code == 403
        assert client.patch("/shops/999", json={"name": "Ghost"}, headers=owner[1]).status_code == 404

    @pytest.mark.parametrize("payload", [
        {"name": ""},
        {"location": 12},
        {"isActive": "no"},
        {"defaultPrice": -1},
        ["name"],
    ])
    def test_edit_validation(self, client, shop, owner, payload):
        assert client.patch(f"/shops/{shop['id']}", json=payload, headers=owner[1]).status_code == 400
        assert client.get(f"/shops/{shop['id']}").get_json()["name"] == "Fade Factory"

    def test_admin_acts_as_owner(self, app, client, book, customer, other_customer):
        booking = book()
        app.test_cli_runner().invoke(args=["grant-role", "other@example.com", "ADMIN"])

        resp = client.patch(f"/bookings/{booking['id']}/status", json={"status": "approved"}, headers=other_customer[1])

        assert resp.status_code == 200


class TestErrorMapping:

    def test_database_failure_is_a_generic_500(self, client, book, owner, monkeypatch):
        from sqlalchemy.exc import OperationalError
        from services import booking_lifecycle

        booking = book()

        def boom(*args, **kwargs):
            raise OperationalError("UPDATE shops", {}, Exception("disk I/O error"))

        monkeypatch.setattr(booking_lifecycle.queue_ledger, "on_booking_left_active_set", boom)

        resp = client.patch(f"/bookings/{booking['id']}/status", json={"status": "rejected"}, headers=owner[1])

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}
        assert client.get(f"/bookings/{booking['id']}", headers=owner[1]).get_json()["status"] == "pending"

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}
