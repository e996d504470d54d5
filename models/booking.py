from datetime import datetime
from models.db import db

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CONFIRMED = "confirmed"
IN_PROGRESS = "inProgress"
COMPLETED = "completed"
CANCELLED = "cancelled"

BOOKING_STATUSES = (PENDING, APPROVED, REJECTED, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED)

# bookings in these statuses count against the shop's queue
ACTIVE_STATUSES = frozenset({PENDING, APPROVED, CONFIRMED, IN_PROGRESS})
TERMINAL_STATUSES = frozenset({REJECTED, COMPLETED, CANCELLED})


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    # snapshot of the shop name at creation time
    shop_name = db.Column(db.String(120), nullable=False)
    service_name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    booking_date = db.Column(db.Date, nullable=False)
    booking_time = db.Column(db.Time, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)

    # ticket number, assigned once at creation (0 = waiting to be re-queued)
    queue_position = db.Column(db.Integer, nullable=False, default=0)
    estimated_wait_time = db.Column(db.Integer, nullable=False, default=0)  # minutes

    # latest submitted payment; earlier submissions stay in payments with status failed
    payment_id = db.Column(db.Integer, nullable=True, index=True)

    cancellation_reason = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    shop = db.relationship("Shop")
    customer = db.relationship("User")

    __table_args__ = (
        db.Index("ix_bookings_shop_date", "shop_id", "booking_date"),
        db.Index("ix_bookings_customer_created", "customer_id", "created_at"),
    )
