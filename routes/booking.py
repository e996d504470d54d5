from flask import Blueprint, request, jsonify, g

from models.booking import BOOKING_STATUSES
from security.rbac import require_roles
from services import booking_lifecycle
from services.errors import ValidationError
from utils.auth_context import login_required
from utils.parsing import field, json_body, parse_amount, parse_date, parse_int, parse_time

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def booking_json(b) -> dict:
    return {
        "id": b.id,
        "customerId": b.customer_id,
        "shopId": b.shop_id,
        "shopName": b.shop_name,
        "serviceName": b.service_name,
        "price": float(b.price) if b.price is not None else None,
        "bookingDate": b.booking_date.isoformat(),
        "bookingTime": b.booking_time.strftime("%H:%M"),
        "status": b.status,
        "queuePosition": b.queue_position,
        "currentRank": booking_lifecycle.current_rank(b),
        "estimatedWaitTime": b.estimated_wait_time,
        "paymentId": b.payment_id,
        "cancellationReason": b.cancellation_reason,
        "completedAt": b.completed_at.isoformat() if b.completed_at else None,
        "cancelledAt": b.cancelled_at.isoformat() if b.cancelled_at else None,
        "createdAt": b.created_at.isoformat(),
        "updatedAt": b.updated_at.isoformat() if b.updated_at else None,
    }


def status_filter():
    status = (request.args.get("status") or "").strip() or None
    if status and status not in BOOKING_STATUSES:
        raise ValidationError("Invalid status")
    return status


# ---------- CUSTOMERS: request a booking ----------
@booking_bp.post("")
@require_roles("CUSTOMER")
def create_booking():
    data = json_body()
    shop_id = field(data, "shopId", "shop_id")
    service_name = field(data, "serviceName", "service_name")
    booking_date = field(data, "bookingDate", "booking_date")
    booking_time = field(data, "bookingTime", "booking_time")

    if not shop_id:
        return jsonify(error="Shop ID is required"), 400
    if not service_name:
        return jsonify(error="Service name is required"), 400
    if not booking_date:
        return jsonify(error="Booking date is required"), 400
    if not booking_time:
        return jsonify(error="Booking time is required"), 400
    if not isinstance(service_name, str) or len(service_name) > 120:
        return jsonify(error="Invalid service name"), 400

    booking = booking_lifecycle.create_booking(
        g.user,
        shop_id=parse_int(shop_id, "shopId"),
        service_name=service_name,
        booking_date=parse_date(booking_date, "bookingDate"),
        booking_time=parse_time(booking_time, "bookingTime"),
        price=parse_amount(data.get("price"), "price"),
    )
    return jsonify(
        booking=booking_json(booking),
        message="Booking request submitted. You will be notified once the shop approves it.",
    ), 201


# ---------- CUSTOMERS: view my bookings ----------
@booking_bp.get("/me")
@login_required
def my_bookings():
    rows = booking_lifecycle.list_customer_bookings(g.user, status=status_filter())
    return jsonify([booking_json(b) for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = booking_lifecycle.get_booking(booking_id, g.user)
    return jsonify(booking_json(booking)), 200


# ---------- OWNER/CUSTOMER: move through the booking lifecycle ----------
@booking_bp.patch("/<int:booking_id>/status")
@login_required
def update_status(booking_id: int):
    data = json_body()
    status = field(data, "status")
    reason = field(data, "cancellationReason", "reason")

    if status not in BOOKING_STATUSES:
        return jsonify(error="Invalid status"), 400
    if reason is not None and (not isinstance(reason, str) or len(reason) > 255):
        return jsonify(error="Invalid cancellation reason"), 400

    booking = booking_lifecycle.transition_status(booking_id, g.user, status, reason=reason)
    return jsonify(booking=booking_json(booking)), 200


# ---------- OWNER/CUSTOMER: reschedule ----------
@booking_bp.patch("/<int:booking_id>")
@login_required
def reschedule(booking_id: int):
    data = json_body()
    booking_date = field(data, "bookingDate", "booking_date")
    booking_time = field(data, "bookingTime", "booking_time")
    status = field(data, "status")

    booking = booking_lifecycle.reschedule_booking(
        booking_id,
        g.user,
        new_date=parse_date(booking_date, "bookingDate") if booking_date else None,
        new_time=parse_time(booking_time, "bookingTime") if booking_time else None,
        status=status,
    )
    return jsonify(booking=booking_json(booking)), 200
