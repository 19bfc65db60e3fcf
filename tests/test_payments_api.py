import json
import re
import time

from conftest import WEBHOOK_SECRET, auth
from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from services.gateway import sign_webhook


def book(client, token, ground_id, slot="18:00-19:00", day="2024-05-01"):
    resp = client.post(
        "/api/bookings",
        json={"groundId": ground_id, "date": day, "timeSlot": slot},
        headers=auth(token),
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["booking"]


def create_order(client, token, booking_id):
    resp = client.post("/api/payments/create-order", json={"bookingId": booking_id}, headers=auth(token))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["order"]


def post_webhook(client, payload, secret=WEBHOOK_SECRET, timestamp=None):
    raw = json.dumps(payload).encode("utf-8")
    timestamp = timestamp or str(int(time.time() * 1000))
    return client.post(
        "/api/payments/webhook",
        data=raw,
        content_type="application/json",
        headers={
            "x-webhook-timestamp": timestamp,
            "x-webhook-signature": sign_webhook(secret, timestamp, raw),
        },
    )


def test_booking_requires_login(client, ground_id):
    resp = client.post("/api/bookings", json={"groundId": ground_id, "date": "2024-05-01", "timeSlot": "18:00-19:00"})
    assert resp.status_code == 401


def test_double_booking_returns_conflict(client, ground_id, player, other_player):
    booking = book(client, player[1], ground_id)
    assert booking["status"] == "pending"
    assert booking["total_amount"] == 500.0
    assert booking["payment"]["status"] == "pending"

    resp = client.post(
        "/api/bookings",
        json={"groundId": ground_id, "date": "2024-05-01", "timeSlot": "18:00-19:00"},
        headers=auth(other_player[1]),
    )
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "This time slot is already booked", "kind": "conflict"}


def test_booking_body_is_validated(client, ground_id, player):
    resp = client.post(
        "/api/bookings",
        json={"groundId": ground_id, "date": "not-a-date", "timeSlot": "18:00-19:00"},
        headers=auth(player[1]),
    )
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["kind"] == "validation_error"
    assert any(d["field"] == "date" for d in body["details"])


def test_create_order_response(client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    assert order["amount"] == 500.0
    assert order["currency"] == "INR"
    assert order["payment_session_id"] == f"session_{order['id']}"
    assert len(gateway.created) == 1


def test_create_order_for_someone_elses_booking(client, gateway, ground_id, player, other_player):
    booking = book(client, player[1], ground_id)

    resp = client.post("/api/payments/create-order", json={"bookingId": booking["id"]}, headers=auth(other_player[1]))
    assert resp.status_code == 403
    assert gateway.created == []


def test_full_payment_flow_via_verify(app, client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    pending = client.post(
        "/api/payments/verify-payment",
        json={"bookingId": booking["id"], "order_id": order["id"]},
        headers=auth(player[1]),
    )
    assert pending.status_code == 200
    assert pending.get_json()["status"] == "pending"

    gateway.set_status(order["id"], "PAID")
    resp = client.post(
        "/api/payments/verify-payment",
        json={"bookingId": booking["id"], "order_id": order["id"]},
        headers=auth(player[1]),
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "confirmed"
    assert body["booking"]["status"] == "confirmed"
    assert body["booking"]["payment"]["status"] == "completed"
    assert re.fullmatch(r"BC\d{6}", body["booking"]["confirmation"]["confirmation_code"])

    # availability reflects the confirmed booking
    slots = client.get(f"/api/grounds/{ground_id}/availability?date=2024-05-01").get_json()["slots"]
    assert {"time_slot": "18:00-19:00", "available": False} in slots

    with app.app_context():
        assert AuditLog.query.filter_by(action="PAYMENT_VERIFIED").count() == 1


def test_verify_expired_order_reports_failure(client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])
    gateway.set_status(order["id"], "EXPIRED")

    resp = client.post("/api/payments/verify-payment", json={"bookingId": booking["id"]}, headers=auth(player[1]))
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["status"] == "failed"
    assert body["error"] == "Payment expired"
    assert body["booking"]["cancellation"]["cancelled_by"] == "system"


def test_signed_webhook_confirms_booking(app, client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    resp = post_webhook(client, {"order_id": order["id"], "order_status": "PAID", "order_amount": 500})
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "status": "confirmed"}

    with app.app_context():
        stored = db.session.get(Booking, booking["id"])
        code = stored.confirmation_code
        assert stored.status == "confirmed"
        assert stored.payment_details["order_status"] == "PAID"
        applied = AuditLog.query.filter_by(action="PAYMENT_WEBHOOK_APPLIED").one()
        assert applied.user_id is None
        assert applied.details["booking_code"] == booking["booking_code"]
        assert applied.details["status"] == "confirmed"

    # redelivery changes nothing
    again = post_webhook(client, {"order_id": order["id"], "order_status": "PAID", "order_amount": 500})
    assert again.status_code == 200
    with app.app_context():
        assert db.session.get(Booking, booking["id"]).confirmation_code == code


def test_webhook_with_bad_signature_is_rejected(app, client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    resp = post_webhook(client, {"order_id": order["id"], "order_status": "PAID"}, secret="wrong")
    assert resp.status_code == 401

    with app.app_context():
        assert db.session.get(Booking, booking["id"]).status == "pending"
        assert AuditLog.query.filter_by(action="WEBHOOK_REJECTED").count() == 1


def test_webhook_with_stale_timestamp_is_rejected(client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    stale = str(int((time.time() - 3600) * 1000))
    resp = post_webhook(client, {"order_id": order["id"], "order_status": "PAID"}, timestamp=stale)
    assert resp.status_code == 401


def test_webhook_for_unknown_order(app, client):
    resp = post_webhook(client, {"order_id": "order_missing", "order_status": "PAID"})
    assert resp.status_code == 404
    with app.app_context():
        assert Booking.query.count() == 0


def test_create_order_twice_returns_the_open_order(client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    first = create_order(client, player[1], booking["id"])
    second = create_order(client, player[1], booking["id"])

    assert second["id"] == first["id"]
    assert len(gateway.created) == 1

    # the webhook for that order still resolves
    resp = post_webhook(client, {"order_id": first["id"], "order_status": "PAID"})
    assert resp.get_json() == {"success": True, "status": "confirmed"}


def test_payment_on_cancelled_booking_needs_review(app, client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])
    client.put(f"/api/bookings/{booking['id']}/cancel", headers=auth(player[1]))
    gateway.set_status(order["id"], "PAID")

    resp = client.post("/api/payments/verify-payment", json={"bookingId": booking["id"]}, headers=auth(player[1]))
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["status"] == "needs_review"
    assert body["booking"]["status"] == "cancelled"
    assert body["booking"]["payment"]["status"] == "pending"

    hook = post_webhook(client, {"order_id": order["id"], "order_status": "PAID"})
    assert hook.get_json() == {"success": True, "status": "needs_review"}

    with app.app_context():
        flagged = AuditLog.query.filter_by(action="PAYMENT_NEEDS_REVIEW").order_by(AuditLog.id).all()
        assert len(flagged) == 2
        assert flagged[1].details["cashfree_order_id"] == order["id"]
        assert db.session.get(Booking, booking["id"]).confirmation_code is None


def test_verify_on_user_cancelled_booking_reports_cancellation(client, gateway, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])
    client.put(f"/api/bookings/{booking['id']}/cancel", headers=auth(player[1]))
    gateway.set_status(order["id"], "EXPIRED")

    resp = client.post("/api/payments/verify-payment", json={"bookingId": booking["id"]}, headers=auth(player[1]))
    assert resp.status_code == 400
    assert resp.get_json()["status"] == "failed"
    assert resp.get_json()["error"] == "Booking was cancelled"


def test_payment_failed_on_cancelled_booking_conflicts(client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])
    client.put(f"/api/bookings/{booking['id']}/cancel", headers=auth(player[1]))

    resp = client.post(
        "/api/payments/payment-failed",
        json={"bookingId": booking["id"], "order_id": order["id"]},
        headers=auth(player[1]),
    )
    assert resp.status_code == 409


def test_late_failure_webhook_keeps_confirmation(app, client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])
    post_webhook(client, {"order_id": order["id"], "order_status": "PAID"})
    with app.app_context():
        before = db.session.get(Booking, booking["id"])
        code, paid_at = before.confirmation_code, before.paid_at

    resp = post_webhook(client, {"order_id": order["id"], "order_status": "FAILED"})
    assert resp.get_json() == {"success": True, "status": "confirmed"}

    with app.app_context():
        after = db.session.get(Booking, booking["id"])
        assert (after.status, after.payment_status) == ("confirmed", "completed")
        assert after.confirmation_code == code
        assert after.paid_at == paid_at
        assert after.cancelled_at is None


def test_payment_failed_endpoint(client, ground_id, player):
    booking = book(client, player[1], ground_id)
    order = create_order(client, player[1], booking["id"])

    resp = client.post(
        "/api/payments/payment-failed",
        json={"bookingId": booking["id"], "order_id": order["id"], "error": "closed checkout"},
        headers=auth(player[1]),
    )
    assert resp.status_code == 200
    body = resp.get_json()["booking"]
    assert body["status"] == "cancelled"
    assert body["payment"]["status"] == "failed"
    assert body["cancellation"]["reason"] == "Payment failed"

    # the slot is free again
    slots = client.get(f"/api/grounds/{ground_id}/availability?date=2024-05-01").get_json()["slots"]
    assert {"time_slot": "18:00-19:00", "available": True} in slots


def test_gateway_error_is_reported_generically(client, gateway, ground_id, player):
    from services.errors import GatewayError

    booking = book(client, player[1], ground_id)
    gateway.create_error = GatewayError("customer_phone invalid", status=400)

    resp = client.post("/api/payments/create-order", json={"bookingId": booking["id"]}, headers=auth(player[1]))
    assert resp.status_code == 502
    assert resp.get_json() == {"error": "Payment gateway request failed", "kind": "gateway_error"}


def test_my_bookings_and_cancel(client, ground_id, player, other_player):
    booking = book(client, player[1], ground_id)

    listed = client.get("/api/bookings", headers=auth(player[1])).get_json()
    assert [b["id"] for b in listed["bookings"]] == [booking["id"]]
    assert listed["pagination"]["total"] == 1

    assert client.get(f"/api/bookings/{booking['id']}", headers=auth(other_player[1])).status_code == 403
    assert client.put(f"/api/bookings/{booking['id']}/cancel", headers=auth(other_player[1])).status_code == 403

    resp = client.put(f"/api/bookings/{booking['id']}/cancel", json={"reason": "Rain"}, headers=auth(player[1]))
    assert resp.status_code == 200
    cancellation = resp.get_json()["booking"]["cancellation"]
    assert cancellation["cancelled_by"] == "user"
    assert cancellation["reason"] == "Rain"

    again = client.put(f"/api/bookings/{booking['id']}/cancel", headers=auth(player[1]))
    assert again.status_code == 409


def test_admin_booking_endpoints(client, ground_id, player, admin):
    booking = book(client, player[1], ground_id)

    assert client.get("/api/admin/bookings", headers=auth(player[1])).status_code == 403

    listed = client.get("/api/admin/bookings?status=pending", headers=auth(admin[1])).get_json()
    assert [b["id"] for b in listed["bookings"]] == [booking["id"]]

    resp = client.put(
        f"/api/admin/bookings/{booking['id']}/status",
        json={"status": "completed"},
        headers=auth(admin[1]),
    )
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "completed"

    bad = client.put(f"/api/admin/bookings/{booking['id']}/status", json={"status": "archived"}, headers=auth(admin[1]))
    assert bad.status_code == 400
