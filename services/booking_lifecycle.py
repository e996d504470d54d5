"""
Booking state machine.

Every status change goes through ``transition_status`` and the TRANSITIONS
table below: the table says which statuses are reachable from the current one
and who may perform the move. ``owner`` means the shop owner (or an ADMIN),
``participant`` means the owner or the customer who placed the booking.

Queue counters on the shop are updated in the same commit as the booking row.
Notifications are sent after the commit and cannot fail the operation.
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.booking import (
    Booking, ACTIVE_STATUSES, BOOKING_STATUSES, TERMINAL_STATUSES,
    PENDING, APPROVED, REJECTED, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED,
)
from models.shop import Shop
from services import notifications, queue_ledger
from services.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from utils.audit import record_event

OWNER = "owner"
PARTICIPANT = "participant"
CUSTOMER = "customer"

TRANSITIONS = {
    PENDING: {APPROVED: OWNER, REJECTED: OWNER},
    APPROVED: {CONFIRMED: PARTICIPANT, COMPLETED: PARTICIPANT, CANCELLED: PARTICIPANT},
    CONFIRMED: {IN_PROGRESS: PARTICIPANT, COMPLETED: PARTICIPANT, CANCELLED: PARTICIPANT},
    IN_PROGRESS: {COMPLETED: PARTICIPANT, CANCELLED: PARTICIPANT},
    COMPLETED: {},
    REJECTED: {},
    CANCELLED: {},
}

# statuses that only the owner may move a booking into, whatever its current status
OWNER_ONLY_TARGETS = frozenset(
    target
    for targets in TRANSITIONS.values()
    for target, role in targets.items()
    if role == OWNER
)


def is_admin(user) -> bool:
    return any(r.name == "ADMIN" for r in user.roles)


def is_shop_owner(shop: Shop, user) -> bool:
    return shop.owner_user_id == user.id or is_admin(user)


def may_perform(required: str, role) -> bool:
    if required == OWNER:
        return role == OWNER
    return role in (OWNER, CUSTOMER)


def requester_role(booking: Booking, shop: Shop, user):
    """OWNER, CUSTOMER or None when the user has nothing to do with the booking."""
    if is_shop_owner(shop, user):
        return OWNER
    if booking.customer_id == user.id:
        return CUSTOMER
    return None


def _load(booking_id: int) -> tuple[Booking, Shop]:
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFound("Booking not found")
    shop = Shop.query.get(booking.shop_id)
    if not shop:
        raise NotFound("Shop not found")
    return booking, shop


def create_booking(customer, shop_id: int, service_name: str, booking_date, booking_time, price=None) -> Booking:
    shop = Shop.query.get(shop_id)
    if not shop or not shop.is_active:
        raise NotFound("Shop not found")

    owner = shop.owner
    if not owner or not owner.email:
        raise ValidationError("Shop contact email not found. The shop profile is incomplete.")
    if owner.id == customer.id:
        raise Forbidden("Shop owners cannot book their own shop")

    if price is None:
        price = shop.default_price if shop.default_price is not None else Decimal("0")
    elif price < 0:
        raise ValidationError("price must be zero or positive")

    # count-then-insert: two concurrent creates may draw the same ticket number
    prior_active = queue_ledger.count_active(shop.id, booking_date)

    booking = Booking(
        customer_id=customer.id,
        shop_id=shop.id,
        shop_name=shop.name,
        service_name=service_name,
        price=price,
        booking_date=booking_date,
        booking_time=booking_time,
        status=PENDING,
        queue_position=prior_active + 1,
        estimated_wait_time=prior_active * queue_ledger.wait_minutes(),
    )
    db.session.add(booking)
    db.session.flush()
    queue_ledger.on_booking_created(shop.id, prior_active)
    db.session.commit()

    record_event(
        "BOOKING_CREATE",
        user_id=customer.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"shop_id": shop.id, "queue_position": booking.queue_position},
    )

    ctx = notifications.booking_context(booking)
    ctx["customer_name"] = customer.display_name
    notifications.dispatch("booking_request", owner, ctx, entity_id=booking.id)
    notifications.dispatch("booking_submitted", customer, ctx, entity_id=booking.id)
    return booking


def transition_status(booking_id: int, requester, new_status: str, reason=None) -> Booking:
    if new_status not in BOOKING_STATUSES:
        raise ValidationError("Invalid status")

    booking, shop = _load(booking_id)

    role = requester_role(booking, shop, requester)
    if role is None:
        raise Forbidden("You are not a participant in this booking")
    if new_status in OWNER_ONLY_TARGETS and role != OWNER:
        raise Forbidden("Only the shop owner can approve or reject bookings")

    old_status = booking.status
    allowed = TRANSITIONS.get(old_status, {})
    if new_status not in allowed:
        raise InvalidTransition(f"Cannot change booking status from {old_status} to {new_status}")
    if not may_perform(allowed[new_status], role):
        raise Forbidden(f"You cannot move this booking to {new_status}")

    booking.status = new_status
    now = datetime.utcnow()
    if new_status == COMPLETED:
        booking.completed_at = now
    elif new_status == CANCELLED:
        booking.cancelled_at = now
        booking.cancellation_reason = reason

    if old_status in ACTIVE_STATUSES and new_status not in ACTIVE_STATUSES:
        queue_ledger.on_booking_left_active_set(shop.id)

    db.session.commit()

    record_event(
        "BOOKING_STATUS_CHANGE",
        user_id=requester.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"from": old_status, "to": new_status, "reason": reason},
    )

    ctx = notifications.booking_context(booking)
    if new_status == APPROVED:
        notifications.dispatch("booking_approved", booking.customer, ctx, entity_id=booking.id)
    elif new_status == REJECTED:
        notifications.dispatch("booking_rejected", booking.customer, ctx, entity_id=booking.id)
    elif new_status == CANCELLED:
        other = booking.customer if role == OWNER else shop.owner
        if other is not None:
            notifications.dispatch("booking_cancelled", other, ctx, entity_id=booking.id)

    return booking


def reschedule_booking(booking_id: int, requester, new_date=None, new_time=None, status=None) -> Booking:
    if new_date is None and new_time is None and status is None:
        raise ValidationError("Provide bookingDate, bookingTime or status")
    if status is not None and status != PENDING:
        raise ValidationError("status can only be reset to pending when rescheduling")

    booking, shop = _load(booking_id)

    if requester_role(booking, shop, requester) is None:
        raise Forbidden("You are not a participant in this booking")
    if booking.status in TERMINAL_STATUSES:
        raise InvalidTransition(f"A {booking.status} booking cannot be rescheduled")
    if booking.status != PENDING and status != PENDING:
        raise InvalidTransition("Only pending bookings can be rescheduled; send status=pending to re-queue")

    old = {
        "date": booking.booking_date.isoformat(),
        "time": booking.booking_time.isoformat(),
        "status": booking.status,
    }
    if new_date is not None:
        booking.booking_date = new_date
    if new_time is not None:
        booking.booking_time = new_time
    if status == PENDING:
        # stays in the active set, so the shop counter is untouched
        booking.status = PENDING
        booking.queue_position = 0

    db.session.commit()

    record_event(
        "BOOKING_RESCHEDULE",
        user_id=requester.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"from": old, "requeued": status == PENDING},
    )
    return booking


def current_rank(booking: Booking):
    """Live place in the day's queue, separate from the immutable ticket number."""
    if booking.status not in ACTIVE_STATUSES:
        return None
    ahead = (
        db.session.query(func.count(Booking.id))
        .filter(
            Booking.shop_id == booking.shop_id,
            Booking.booking_date == booking.booking_date,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.id < booking.id,
        )
        .scalar()
    )
    return (ahead or 0) + 1


def get_booking(booking_id: int, requester) -> Booking:
    booking, shop = _load(booking_id)
    if requester_role(booking, shop, requester) is None:
        raise Forbidden("You are not a participant in this booking")
    return booking


def list_customer_bookings(customer, status=None) -> list[Booking]:
    q = Booking.query.filter_by(customer_id=customer.id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()


def list_shop_bookings(shop_id: int, requester, status=None, booking_date=None) -> list[Booking]:
    shop = Shop.query.get(shop_id)
    if not shop:
        raise NotFound("Shop not found")
    if not is_shop_owner(shop, requester):
        raise Forbidden("Only the shop owner can view its bookings")

    q = Booking.query.filter_by(shop_id=shop.id)
    if status:
        q = q.filter_by(status=status)
    if booking_date is not None:
        q = q.filter_by(booking_date=booking_date)
    return q.order_by(Booking.booking_date.asc(), Booking.booking_time.asc(), Booking.id.asc()).all()
