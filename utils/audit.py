import json

from flask import has_request_context, request

from models import db
from models.audit_log import AuditLog
from security.session import client_ip


def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    """Append an audit row. Works outside a request (CLI, webhooks replayed by hand)."""
    ip = user_agent = None
    if has_request_context():
        ip = client_ip()
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    db.session.add(AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    ))
    db.session.commit()


def log_booking_event(action: str, booking, user_id=None, **metadata):
    """Audit a booking change; the booking's code and state are always recorded."""
    details = {
        "booking_code": booking.booking_code,
        "status": booking.status,
        "payment_status": booking.payment_status,
        **metadata,
    }
    log_event(action, user_id=user_id, entity="booking", entity_id=booking.id, metadata=details)
