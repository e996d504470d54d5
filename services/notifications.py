"""
Best-effort email notifications fired after booking and payment changes.

Callers invoke ``dispatch`` only after their own transaction has been
committed. A failed delivery is logged and recorded in the audit log, and a
failed audit write is only logged. Neither propagates to the caller.
"""
from flask import current_app

from services.errors import DeliveryError
from utils import emailer
from utils.audit import record_event

APP_NAME = "ShopQueue"


def _booking_lines(ctx: dict) -> str:
    lines = [
        f"Shop: {ctx.get('shop_name')}",
        f"Service: {ctx.get('service_name')}",
        f"Date: {ctx.get('booking_date')}",
        f"Time: {ctx.get('booking_time')}",
    ]
    if ctx.get("price") is not None:
        lines.append(f"Price: {ctx['price']}")
    if ctx.get("queue_position"):
        lines.append(f"Queue position: {ctx['queue_position']}")
    return "\n".join(lines)


def _booking_request(ctx):
    return (
        "New booking request",
        f"Hi {ctx['recipient_name']},\n\n"
        f"{ctx['customer_name']} requested a booking.\n\n"
        f"{_booking_lines(ctx)}\n\n"
        "Log in to your dashboard to approve or reject it.",
    )


def _booking_submitted(ctx):
    return (
        "Booking request submitted",
        f"Hi {ctx['recipient_name']},\n\n"
        "Your booking request has been submitted.\n\n"
        f"{_booking_lines(ctx)}\n"
        f"Estimated wait time: {ctx.get('estimated_wait_time', 0)} minutes\n\n"
        "You will be notified once the shop reviews it.",
    )


def _booking_approved(ctx):
    return (
        "Booking approved",
        f"Hi {ctx['recipient_name']},\n\n"
        "Your booking has been approved.\n\n"
        f"{_booking_lines(ctx)}\n\n"
        "Please arrive on time for your appointment.",
    )


def _booking_rejected(ctx):
    return (
        "Booking rejected",
        f"Hi {ctx['recipient_name']},\n\n"
        "Your booking request was rejected.\n\n"
        f"{_booking_lines(ctx)}\n\n"
        "Please try another shop or a different time.",
    )


def _booking_cancelled(ctx):
    reason = ctx.get("cancellation_reason")
    reason_line = f"\nReason: {reason}" if reason else ""
    return (
        "Booking cancelled",
        f"Hi {ctx['recipient_name']},\n\n"
        "A booking has been cancelled.\n\n"
        f"{_booking_lines(ctx)}{reason_line}",
    )


def _payment_submitted(ctx):
    return (
        "Payment submitted for review",
        f"Hi {ctx['recipient_name']},\n\n"
        f"A {ctx['method']} payment of {ctx['amount']} was submitted "
        f"for booking #{ctx['booking_id']} (transaction {ctx.get('transaction_id') or 'n/a'}).\n\n"
        "Log in to your dashboard to confirm it.",
    )


def _payment_confirmed(ctx):
    return (
        "Payment confirmed",
        f"Hi {ctx['recipient_name']},\n\n"
        f"Your payment of {ctx['amount']} for booking #{ctx['booking_id']} has been confirmed.\n\n"
        f"{_booking_lines(ctx)}",
    )


TEMPLATES = {
    "booking_request": _booking_request,
    "booking_submitted": _booking_submitted,
    "booking_approved": _booking_approved,
    "booking_rejected": _booking_rejected,
    "booking_cancelled": _booking_cancelled,
    "payment_submitted": _payment_submitted,
    "payment_confirmed": _payment_confirmed,
}


def render(template: str, context: dict) -> tuple[str, str]:
    subject, body = TEMPLATES[template](context)
    return f"{subject} - {APP_NAME}", f"{body}\n\nThank you,\n{APP_NAME}"


def dispatch(template: str, recipient, context: dict, entity_id=None) -> bool:
    """Send one notification. Returns True if it was handed to the mail server."""
    to_email = getattr(recipient, "email", None)
    ctx = dict(context, recipient_name=getattr(recipient, "display_name", None) or to_email)

    try:
        subject, body = render(template, ctx)
        emailer.send_email(to_email, subject, body)
    except DeliveryError as exc:
        current_app.logger.warning("Notification %s to %s not delivered: %s", template, to_email, exc)
        error = str(exc)
    except Exception as exc:
        current_app.logger.exception("Notification %s to %s failed", template, to_email)
        error = repr(exc)
    else:
        record_event("NOTIFICATION_SENT", entity="booking", entity_id=entity_id, metadata={"template": template})
        return True

    record_event(
        "NOTIFICATION_FAILED",
        entity="booking",
        entity_id=entity_id,
        metadata={"template": template, "error": error},
    )
    return False


def booking_context(booking) -> dict:
    return {
        "booking_id": booking.id,
        "shop_name": booking.shop_name,
        "service_name": booking.service_name,
        "booking_date": booking.booking_date.isoformat(),
        "booking_time": booking.booking_time.strftime("%H:%M"),
        "price": booking.price,
        "queue_position": booking.queue_position,
        "estimated_wait_time": booking.estimated_wait_time,
        "cancellation_reason": booking.cancellation_reason,
    }
