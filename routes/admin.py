from flask import Blueprint, g, jsonify, request

from models import db
from models.booking import Booking
from schemas import parse_body
from schemas.requests import BookingStatusUpdateRequest
from security.rbac import require_roles
from services import booking_payments
from services.errors import NotFoundError
from utils.audit import log_booking_event, log_event
from utils.pagination import paginate, pagination_to_dict
from utils.serialize import booking_to_dict

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# ---------- ADMIN: list all bookings ----------
@admin_bp.get("/bookings")
@require_roles("ADMIN")
def list_all_bookings():
    status = request.args.get("status")
    ground_id = request.args.get("ground_id", type=int)

    q = Booking.query
    if status:
        q = q.filter_by(status=status)
    if ground_id:
        q = q.filter_by(ground_id=ground_id)

    page = paginate(q.order_by(Booking.created_at.desc(), Booking.id.desc()), default_limit=20)
    log_event("ADMIN_BOOKINGS_VIEW", user_id=g.user.id)
    return jsonify(
        bookings=[booking_to_dict(b) for b in page.items],
        pagination=pagination_to_dict(page),
    ), 200


# ---------- ADMIN: override booking status ----------
@admin_bp.put("/bookings/<int:booking_id>/status")
@require_roles("ADMIN")
def update_booking_status(booking_id: int):
    body = parse_body(BookingStatusUpdateRequest)

    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")

    previous = booking.status
    booking = booking_payments().set_status(booking, body.status)

    log_booking_event("ADMIN_BOOKING_STATUS", booking, user_id=g.user.id, previous_status=previous)
    return jsonify(message="Booking status updated successfully", booking=booking_to_dict(booking)), 200
