from datetime import datetime
from models.db import db

class Shop(db.Model):
    __tablename__ = "shops"

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # used when a booking does not carry its own price
    default_price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # queue ledger: derived from active bookings, written only by services.queue_ledger
    current_queue_length = db.Column(db.Integer, nullable=False, default=0)
    estimated_wait_time = db.Column(db.Integer, nullable=False, default=0)  # minutes

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    owner = db.relationship("User")

    __table_args__ = (
        db.CheckConstraint("current_queue_length >= 0", name="ck_shop_queue_length_non_negative"),
    )
