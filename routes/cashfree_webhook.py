import logging

from flask import Blueprint, jsonify, request

from schemas import parse_body
from schemas.requests import WebhookPayload
from services import booking_payments
from services.booking_payments import NEEDS_REVIEW
from services.errors import AuthenticationError
from utils.audit import log_booking_event, log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/api/payments")


@webhook_bp.post("/webhook")
def cashfree_webhook():
    service = booking_payments()
    if not service.settings.webhook_secret:
        return jsonify(error="Webhook secret not configured"), 500

    raw_body = request.get_data()
    signed = service.gateway.verify_webhook_signature(
        raw_body,
        request.headers.get("x-webhook-timestamp"),
        request.headers.get("x-webhook-signature"),
    )
    if not signed:
        log_event("WEBHOOK_REJECTED", entity="webhook", metadata={"reason": "invalid_signature"})
        raise AuthenticationError("Invalid webhook signature")

    body = parse_body(WebhookPayload)
    logger.info("Cashfree webhook received: order=%s status=%s", body.order_id, body.order_status)

    result = service.reconcile_from_webhook(
        body.order_id,
        body.order_status,
        snapshot=request.get_json(silent=True),
    )

    if result.changed:
        log_booking_event(
            "PAYMENT_WEBHOOK_APPLIED",
            result.booking,
            cashfree_order_id=body.order_id,
            gateway_status=body.order_status,
        )
    elif result.outcome == NEEDS_REVIEW:
        log_booking_event(
            "PAYMENT_NEEDS_REVIEW",
            result.booking,
            cashfree_order_id=body.order_id,
            gateway_status=body.order_status,
        )
    return jsonify(success=True, status=result.outcome), 200
