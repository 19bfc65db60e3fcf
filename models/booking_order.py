from datetime import datetime
from models.db import db


class BookingOrder(db.Model):
    """Every gateway order ever created for a booking.

    ``Booking.cashfree_order_id`` only points at the latest one; webhooks for
    earlier orders are resolved through this table.
    """

    __tablename__ = "booking_orders"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    order_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    payment_session_id = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="orders")
