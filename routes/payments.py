from flask import Blueprint, g, jsonify

from schemas import parse_body
from schemas.requests import CreateOrderRequest, PaymentFailedRequest, VerifyPaymentRequest
from services import booking_payments
from services.booking_payments import NEEDS_REVIEW
from utils.audit import log_booking_event, log_event
from utils.auth_context import login_required
from utils.serialize import booking_to_dict

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/create-order")
@login_required
def create_order():
    body = parse_body(CreateOrderRequest)

    order = booking_payments().create_payment_order(body.booking_id, g.user.id)

    log_event(
        "PAYMENT_ORDER_CREATED",
        user_id=g.user.id,
        entity="booking",
        entity_id=body.booking_id,
        metadata={"cashfree_order_id": order.order_id},
    )
    return jsonify(order=order.to_dict()), 200


@payments_bp.post("/verify-payment")
@login_required
def verify_payment():
    body = parse_body(VerifyPaymentRequest)

    result = booking_payments().verify_payment(body.booking_id, g.user.id, order_id=body.order_id)
    booking = result.booking

    if result.changed:
        log_booking_event("PAYMENT_VERIFIED", booking, user_id=g.user.id, gateway_status=result.gateway_status)
    if result.outcome == NEEDS_REVIEW:
        log_booking_event("PAYMENT_NEEDS_REVIEW", booking, user_id=g.user.id, gateway_status=result.gateway_status)
        return jsonify(
            error="Payment received for a booking that cannot be confirmed; a refund will be reviewed",
            status=NEEDS_REVIEW,
            booking=booking_to_dict(booking),
        ), 409

    if result.outcome == "confirmed":
        return jsonify(
            message="Payment verified and booking confirmed!",
            status="confirmed",
            booking=booking_to_dict(booking),
        ), 200
    if result.outcome == "pending":
        return jsonify(message="Payment pending", status="pending", booking=booking_to_dict(booking)), 200
    return jsonify(
        error=booking.cancel_reason or "Booking was cancelled",
        status="failed",
        booking=booking_to_dict(booking),
    ), 400


@payments_bp.post("/payment-failed")
@login_required
def payment_failed():
    body = parse_body(PaymentFailedRequest)

    booking = booking_payments().record_manual_failure(
        body.booking_id, g.user.id, order_id=body.order_id, error=body.error
    )

    log_booking_event("PAYMENT_FAILED_REPORTED", booking, user_id=g.user.id, cashfree_order_id=booking.cashfree_order_id)
    return jsonify(message="Payment failure recorded", booking=booking_to_dict(booking)), 200
