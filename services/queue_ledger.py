"""
Per-shop queue counters kept on the Shop row.

The counters are a cache derived from the shop's active bookings. Every
function here only stages SQL on the current session; the booking operation
that calls it owns the commit, so the booking write and the counter update
land in the same transaction.
"""
from flask import current_app
from sqlalchemy import func

from models import db
from models.booking import Booking, ACTIVE_STATUSES
from models.shop import Shop


def wait_minutes() -> int:
    return int(current_app.config.get("WAIT_MINUTES_PER_BOOKING", 15))


def count_active(shop_id: int, booking_date=None) -> int:
    q = db.session.query(func.count(Booking.id)).filter(
        Booking.shop_id == shop_id,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if booking_date is not None:
        q = q.filter(Booking.booking_date == booking_date)
    return q.scalar() or 0


def on_booking_created(shop_id: int, prior_active: int) -> None:
    minutes = wait_minutes()
    # single UPDATE ... SET n = n + 1 so concurrent creates don't lose increments
    (
        Shop.query
        .filter(Shop.id == shop_id)
        .update(
            {
                Shop.current_queue_length: Shop.current_queue_length + 1,
                Shop.estimated_wait_time: prior_active * minutes + minutes,
            },
            synchronize_session=False,
        )
    )


def on_booking_left_active_set(shop_id: int) -> None:
    (
        Shop.query
        .filter(Shop.id == shop_id, Shop.current_queue_length > 0)
        .update(
            {Shop.current_queue_length: Shop.current_queue_length - 1},
            synchronize_session=False,
        )
    )


def recount(shop_id: int) -> tuple[int, int]:
    """
    Recompute current_queue_length from bookings.
    Returns (old_value, new_value).
    """
    shop = Shop.query.get(shop_id)
    if shop is None:
        return 0, 0
    old = shop.current_queue_length
    shop.current_queue_length = count_active(shop_id)
    return old, shop.current_queue_length
