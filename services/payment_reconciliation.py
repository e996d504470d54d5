"""
Manual (out-of-band) payments: the customer submits proof, the shop owner confirms.
"""
from datetime import datetime

from models import db
from models.booking import (
    Booking, PENDING, APPROVED, CONFIRMED, IN_PROGRESS, COMPLETED, REJECTED, CANCELLED,
)
from models.payment import (
    Payment, PAYMENT_METHODS, PAYMENT_PENDING, PAYMENT_COMPLETED, PAYMENT_FAILED,
)
from models.shop import Shop
from services import notifications
from services.booking_lifecycle import is_shop_owner
from services.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from utils.audit import record_event
from utils.storage import save_upload

CONFIRMABLE_STATUSES = {PENDING, APPROVED}
ALREADY_CONFIRMED_STATUSES = {CONFIRMED, IN_PROGRESS, COMPLETED}


def submit_manual_payment(booking_id: int, customer, method: str, transaction_id=None, amount=None, proof_file=None) -> Payment:
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")
    if method != "cash" and not transaction_id:
        raise ValidationError("transactionId is required")
    if amount is not None and amount < 0:
        raise ValidationError("amount must be zero or positive")

    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.customer_id != customer.id:
        raise Forbidden("Only the customer who placed the booking can submit a payment")
    if booking.status in (REJECTED, CANCELLED):
        raise InvalidTransition(f"Cannot pay for a {booking.status} booking")

    previous = Payment.query.get(booking.payment_id) if booking.payment_id else None
    if previous is not None and previous.status == PAYMENT_COMPLETED:
        raise InvalidTransition("Payment for this booking is already confirmed")

    proof_url = save_upload(proof_file, "payments") if proof_file else None

    payment = Payment(
        booking_id=booking.id,
        customer_id=customer.id,
        amount=amount if amount is not None else booking.price,
        method=method,
        status=PAYMENT_PENDING,
        transaction_id=transaction_id,
        proof_url=proof_url,
    )
    db.session.add(payment)
    if previous is not None and previous.status == PAYMENT_PENDING:
        previous.status = PAYMENT_FAILED
        previous.failure_reason = "Superseded by a new submission"
    db.session.flush()

    # booking status is left as is: an approved booking must not fall back to pending
    booking.payment_id = payment.id
    db.session.commit()

    record_event(
        "PAYMENT_SUBMIT",
        user_id=customer.id,
        entity="payment",
        entity_id=payment.id,
        metadata={"booking_id": booking.id, "method": method, "superseded": previous.id if previous else None},
    )

    shop = Shop.query.get(booking.shop_id)
    if shop is not None and shop.owner is not None:
        ctx = notifications.booking_context(booking)
        ctx.update(amount=payment.amount, method=method, transaction_id=transaction_id)
        notifications.dispatch("payment_submitted", shop.owner, ctx, entity_id=booking.id)
    return payment


def confirm_payment(booking_id: int, requester) -> tuple[Booking, Payment]:
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFound("Booking not found")
    shop = Shop.query.get(booking.shop_id)
    if not shop:
        raise NotFound("Shop not found")
    if not is_shop_owner(shop, requester):
        raise Forbidden("Only the shop owner can confirm payments")

    payment = Payment.query.get(booking.payment_id) if booking.payment_id else None
    if payment is None:
        raise NotFound("No payment submitted for this booking")
    if payment.status == PAYMENT_COMPLETED:
        raise InvalidTransition("Payment already confirmed")
    if payment.status != PAYMENT_PENDING:
        raise InvalidTransition(f"Cannot confirm a {payment.status} payment")

    if booking.status in CONFIRMABLE_STATUSES:
        # both statuses are active, so the shop counter is untouched
        booking.status = CONFIRMED
    elif booking.status not in ALREADY_CONFIRMED_STATUSES:
        raise InvalidTransition(f"Cannot confirm payment for a {booking.status} booking")

    payment.status = PAYMENT_COMPLETED
    payment.completed_at = datetime.utcnow()
    db.session.commit()

    record_event(
        "PAYMENT_CONFIRM",
        user_id=requester.id,
        entity="payment",
        entity_id=payment.id,
        metadata={"booking_id": booking.id, "booking_status": booking.status},
    )

    ctx = notifications.booking_context(booking)
    ctx["amount"] = payment.amount
    notifications.dispatch("payment_confirmed", booking.customer, ctx, entity_id=booking.id)
    return booking, payment


def list_customer_payments(customer) -> list[Payment]:
    return (
        Payment.query
        .filter_by(customer_id=customer.id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )
