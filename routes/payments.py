from flask import Blueprint, request, jsonify, g

from routes.booking import booking_json
from security.rbac import require_roles
from services import payment_reconciliation
from utils.auth_context import login_required
from utils.parsing import field, json_body, parse_amount, parse_int

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def payment_json(p) -> dict:
    return {
        "id": p.id,
        "bookingId": p.booking_id,
        "customerId": p.customer_id,
        "amount": float(p.amount),
        "method": p.method,
        "status": p.status,
        "transactionId": p.transaction_id,
        "proofUrl": p.proof_url,
        "failureReason": p.failure_reason,
        "createdAt": p.created_at.isoformat(),
        "completedAt": p.completed_at.isoformat() if p.completed_at else None,
    }


# ---------- CUSTOMERS: submit proof of a manual payment ----------
@payments_bp.post("/manual")
@require_roles("CUSTOMER")
def submit_manual_payment():
    # multipart/form-data when a proof file is attached, JSON otherwise
    if request.mimetype == "multipart/form-data":
        data = request.form
        proof = request.files.get("proof")
    else:
        data = json_body()
        proof = None

    booking_id = field(data, "bookingId", "booking_id")
    method = (field(data, "method") or "")
    if not booking_id:
        return jsonify(error="Booking ID is required"), 400
    if not isinstance(method, str) or not method:
        return jsonify(error="Payment method is required"), 400

    transaction_id = field(data, "transactionId", "transaction_id")
    if transaction_id is not None:
        transaction_id = str(transaction_id)[:120]

    payment = payment_reconciliation.submit_manual_payment(
        parse_int(booking_id, "bookingId"),
        g.user,
        method=method.lower(),
        transaction_id=transaction_id,
        amount=parse_amount(field(data, "amount"), "amount"),
        proof_file=proof if proof and proof.filename else None,
    )
    return jsonify(
        payment=payment_json(payment),
        message="Payment submitted. The shop will confirm it shortly.",
    ), 201


# ---------- SHOP OWNERS: confirm a manual payment ----------
@payments_bp.post("/confirm/<int:booking_id>")
@login_required
def confirm_payment(booking_id: int):
    booking, payment = payment_reconciliation.confirm_payment(booking_id, g.user)
    return jsonify(booking=booking_json(booking), payment=payment_json(payment)), 200


# ---------- CUSTOMERS: payment history ----------
@payments_bp.get("/me")
@login_required
def my_payments():
    rows = payment_reconciliation.list_customer_payments(g.user)
    return jsonify([payment_json(p) for p in rows]), 200
