"""
Manual payment submission and owner confirmation.
"""

import io

import pytest

from services.errors import DeliveryError


def submit(client, headers, booking_id, **extra):
    payload = {"bookingId": booking_id, "method": "evc", "transactionId": "TX-1001"}
    payload.update(extra)
    return client.post("/payments/manual", json=payload, headers=headers)


class TestSubmitManualPayment:

    def test_links_payment_and_keeps_status(self, client, book, customer):
        booking = book()

        resp = submit(client, customer[1], booking["id"])

        assert resp.status_code == 201
        payment = resp.get_json()["payment"]
        assert payment["status"] == "pending"
        assert payment["amount"] == 12.5
        assert payment["method"] == "evc"
        assert payment["transactionId"] == "TX-1001"

        after = client.get(f"/bookings/{booking['id']}", headers=customer[1]).get_json()
        assert after["paymentId"] == payment["id"]
        assert after["status"] == "pending"

    def test_does_not_regress_approved_booking(self, client, book, customer, set_status):
        booking = book()
        set_status(booking["id"], "approved")

        submit(client, customer[1], booking["id"], amount=20)

        after = client.get(f"/bookings/{booking['id']}", headers=customer[1]).get_json()
        assert after["status"] == "approved"

    def test_resubmission_supersedes_previous(self, client, book, customer):
        booking = book()
        first = submit(client, customer[1], booking["id"]).get_json()["payment"]
        second = submit(client, customer[1], booking["id"], transactionId="TX-2002").get_json()["payment"]

        history = {p["id"]: p for p in client.get("/payments/me", headers=customer[1]).get_json()}
        assert history[first["id"]]["status"] == "failed"
        assert history[first["id"]]["failureReason"] == "Superseded by a new submission"
        assert history[second["id"]]["status"] == "pending"

        after = client.get(f"/bookings/{booking['id']}", headers=customer[1]).get_json()
        assert after["paymentId"] == second["id"]

    def test_with_proof_upload(self, client, app, book, customer):
        booking = book()

        resp = client.post(
            "/payments/manual",
            data={
                "bookingId": str(booking["id"]),
                "method": "zaad",
                "transactionId": "Z-77",
                "proof": (io.BytesIO(b"fake-png-bytes"), "receipt.png"),
            },
            headers=customer[1],
            content_type="multipart/form-data",
        )

        assert resp.status_code == 201
        proof_url = resp.get_json()["payment"]["proofUrl"]
        assert proof_url.startswith("/uploads/payments/payments-")
        assert proof_url.endswith(".png")
        assert client.get(proof_url).data == b"fake-png-bytes"

    def test_rejects_unsupported_proof_type(self, client, book, customer):
        booking = book()
        resp = client.post(
            "/payments/manual",
            data={
                "bookingId": str(booking["id"]),
                "method": "zaad",
                "transactionId": "Z-77",
                "proof": (io.BytesIO(b"#!/bin/sh"), "receipt.sh"),
            },
            headers=customer[1],
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_cash_needs_no_transaction_id(self, client, book, customer):
        booking = book()
        resp = client.post("/payments/manual", json={"bookingId": booking["id"], "method": "cash"}, headers=customer[1])
        assert resp.status_code == 201

    @pytest.mark.parametrize("payload", [
        {"method": "bitcoin", "transactionId": "T"},
        {"method": "evc"},
        {"method": "evc", "transactionId": "T", "amount": -5},
        {"method": "evc", "transactionId": "T", "amount": "lots"},
    ])
    def test_validation(self, client, book, customer, payload):
        booking = book()
        resp = client.post("/payments/manual", json=dict(payload, bookingId=booking["id"]), headers=customer[1])
        assert resp.status_code == 400

    def test_booking_id_required(self, client, customer):
        resp = client.post("/payments/manual", json={"method": "evc", "transactionId": "T"}, headers=customer[1])
        assert resp.status_code == 400

    def test_array_body(self, client, customer):
        resp = client.post("/payments/manual", json=[{"method": "evc"}], headers=customer[1])
        assert resp.status_code == 400

    def test_unknown_booking(self, client, customer):
        assert submit(client, customer[1], 999).status_code == 404

    def test_only_booking_customer_can_pay(self, client, book, other_customer):
        booking = book()
        assert submit(client, other_customer[1], booking["id"]).status_code == 403

    def test_cannot_pay_for_cancelled_booking(self, client, book, customer, set_status):
        booking = book()
        set_status(booking["id"], "cancelled")
        assert submit(client, customer[1], booking["id"]).status_code == 409

    def test_owner_is_notified(self, client, book, customer, sent_emails):
        booking = book()
        sent_emails.reset_mock()

        submit(client, customer[1], booking["id"])

        assert sent_emails.call_args.args[0] == "owner@example.com"
        assert sent_emails.call_args.args[1].startswith("Payment submitted")


class TestConfirmPayment:

    def test_owner_confirms_approved_booking(self, client, shop, book, owner, customer, set_status, queue_state, sent_emails):
        booking = book()
        set_status(booking["id"], "approved")
        submit(client, customer[1], booking["id"])

        resp = client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["booking"]["status"] == "confirmed"
        assert body["payment"]["status"] == "completed"
        assert body["payment"]["completedAt"] is not None
        assert queue_state(shop["id"]) == (1, 1)
        assert sent_emails.call_args.args[0] == "customer@example.com"

    def test_confirms_pending_booking(self, client, book, owner, customer):
        booking = book()
        submit(client, customer[1], booking["id"])

        resp = client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])

        assert resp.get_json()["booking"]["status"] == "confirmed"

    def test_keeps_more_advanced_status(self, client, book, owner, customer, set_status):
        booking = book()
        set_status(booking["id"], "inProgress")
        submit(client, customer[1], booking["id"])

        resp = client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])

        assert resp.get_json()["booking"]["status"] == "inProgress"
        assert resp.get_json()["payment"]["status"] == "completed"

    def test_customer_cannot_confirm(self, client, book, customer):
        booking = book()
        submit(client, customer[1], booking["id"])
        assert client.post(f"/payments/confirm/{booking['id']}", headers=customer[1]).status_code == 403

    def test_no_payment_submitted(self, client, book, owner):
        booking = book()
        resp = client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])
        assert resp.status_code == 404

    def test_unknown_booking(self, client, owner):
        assert client.post("/payments/confirm/999", headers=owner[1]).status_code == 404

    def test_double_confirm_and_resubmit_after_confirm(self, client, book, owner, customer):
        booking = book()
        submit(client, customer[1], booking["id"])
        client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])

        assert client.post(f"/payments/confirm/{booking['id']}", headers=owner[1]).status_code == 409
        assert submit(client, customer[1], booking["id"]).status_code == 409

    def test_notifier_failure_does_not_fail_confirmation(self, client, book, owner, customer, sent_emails):
        booking = book()
        submit(client, customer[1], booking["id"])
        sent_emails.side_effect = DeliveryError("smtp down")

        resp = client.post(f"/payments/confirm/{booking['id']}", headers=owner[1])

        assert resp.status_code == 200
