from datetime import datetime
from models.db import db

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed")
PAYMENT_STATUSES = ("pending", "completed", "failed")

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    booking_code = db.Column(db.String(32), unique=True, nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    ground_id = db.Column(db.Integer, db.ForeignKey("grounds.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    time_slot = db.Column(db.String(20), nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=1)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, confirmed, cancelled, completed

    # payment sub-record (cached snapshot of the gateway order)
    cashfree_order_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    cashfree_session_id = db.Column(db.String(255), nullable=True)
    payment_status = db.Column(db.String(20), nullable=False, default="pending")
    paid_at = db.Column(db.DateTime, nullable=True)
    payment_details = db.Column(db.JSON, nullable=True)

    # confirmation sub-record
    confirmation_code = db.Column(db.String(16), nullable=True)
    confirmed_by = db.Column(db.String(20), nullable=True)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    # cancellation sub-record
    cancelled_by = db.Column(db.String(20), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="bookings")
    ground = db.relationship("Ground")
    orders = db.relationship("BookingOrder", back_populates="booking", order_by="BookingOrder.id")

    __table_args__ = (
        # Hard business-rule: one pending/confirmed booking per ground, day and slot
        db.Index(
            "uq_booking_active_slot",
            "ground_id", "date", "time_slot",
            unique=True,
            sqlite_where=db.text("status IN ('pending', 'confirmed')"),
            postgresql_where=db.text("status IN ('pending', 'confirmed')"),
        ),
    )
