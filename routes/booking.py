from flask import Blueprint, g, jsonify, request

from models import db
from models.booking import Booking
from schemas import parse_body
from schemas.requests import BookingCancelRequest, BookingCreateRequest
from security.rbac import can_manage
from services import booking_payments
from services.errors import NotFoundError
from utils.audit import log_booking_event
from utils.auth_context import login_required
from utils.pagination import paginate, pagination_to_dict
from utils.serialize import booking_to_dict

booking_bp = Blueprint("booking", __name__, url_prefix="/api/bookings")


def _get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


# ---------- PLAYERS: book slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("")
@login_required
def create_booking():
    body = parse_body(BookingCreateRequest)

    booking = booking_payments().check_and_reserve_slot(
        ground_id=body.ground_id,
        day=body.date,
        time_slot=body.time_slot,
        user_id=g.user.id,
        duration=body.duration,
        notes=body.notes,
    )

    log_booking_event(
        "BOOKING_CREATE",
        booking,
        user_id=g.user.id,
        ground_id=body.ground_id,
        date=body.date.isoformat(),
        time_slot=body.time_slot,
    )
    return jsonify(message="Booking created successfully", booking=booking_to_dict(booking)), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        q = q.filter_by(status=status)

    page = paginate(q.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return jsonify(
        bookings=[booking_to_dict(b) for b in page.items],
        pagination=pagination_to_dict(page),
    ), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = _get_booking(booking_id)
    if not can_manage(booking.user_id):
        return jsonify(error="Not authorized to view this booking"), 403
    return jsonify(booking=booking_to_dict(booking)), 200


# ---------- PLAYERS: cancel booking ----------
@booking_bp.put("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    booking = _get_booking(booking_id)
    if not can_manage(booking.user_id):
        return jsonify(error="Not authorized to cancel this booking"), 403

    body = parse_body(BookingCancelRequest)
    actor = "user" if booking.user_id == g.user.id else "admin"
    booking = booking_payments().cancel_booking(booking, actor=actor, reason=body.reason)

    log_booking_event("BOOKING_CANCEL", booking, user_id=g.user.id, actor=actor, reason=body.reason)
    return jsonify(message="Booking cancelled successfully", booking=booking_to_dict(booking)), 200
