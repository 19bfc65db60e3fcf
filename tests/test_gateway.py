import json
import time
from decimal import Decimal

import httpx
import pytest
import respx

from conftest import WEBHOOK_SECRET, payment_settings
from config import CASHFREE_PRODUCTION_URL, CASHFREE_SANDBOX_URL, PaymentSettings
from services.errors import GatewayError
from services.gateway import CashfreeGateway, Customer, GatewayOrder, sign_webhook

BASE = CASHFREE_SANDBOX_URL
CUSTOMER = Customer(id="7", name="Test Player", email="player@example.com", phone="9000000001")


@pytest.fixture()
def cashfree():
    gateway = CashfreeGateway(payment_settings())
    yield gateway
    gateway.close()


def _create(gateway):
    return gateway.create_order(
        order_id="order_1_1714550000000_abc123",
        amount=Decimal("500.00"),
        currency="INR",
        customer=CUSTOMER,
        return_url="http://testserver/payment/callback?booking_id=1",
        notify_url="http://testserver/api/payments/webhook",
        meta={"booking_id": "BK1714550000000ABCDE", "ground_name": "Green Box Arena"},
    )


def test_settings_pick_environment():
    assert payment_settings().api_url == CASHFREE_SANDBOX_URL
    prod = PaymentSettings.from_mapping({"CASHFREE_MODE": "production", "CASHFREE_SECRET_KEY": "sk"})
    assert prod.api_url == CASHFREE_PRODUCTION_URL
    assert prod.webhook_secret == "sk"
    assert prod.currency == "INR"


@respx.mock
def test_create_order_request(cashfree):
    route = respx.post(f"{BASE}/orders").respond(
        200,
        json={
            "order_id": "order_1_1714550000000_abc123",
            "order_status": "ACTIVE",
            "order_amount": 500.0,
            "order_currency": "INR",
            "payment_session_id": "session_xyz",
        },
    )

    order = _create(cashfree)

    assert order.order_id == "order_1_1714550000000_abc123"
    assert order.status == "ACTIVE"
    assert order.amount == Decimal("500.0")
    assert order.payment_session_id == "session_xyz"

    request = route.calls[0].request
    assert request.headers["x-client-id"] == "TEST_APP_ID"
    assert request.headers["x-client-secret"] == "TEST_SECRET"
    assert request.headers["x-api-version"] == "2022-09-01"

    body = json.loads(request.content)
    assert body["order_amount"] == 500.0
    assert body["order_currency"] == "INR"
    assert body["customer_details"]["customer_phone"] == "9000000001"
    assert body["order_meta"]["notify_url"] == "http://testserver/api/payments/webhook"
    assert body["order_tags"]["ground_name"] == "Green Box Arena"


@respx.mock
def test_create_order_upstream_error(cashfree):
    respx.post(f"{BASE}/orders").respond(
        400, json={"message": "order_amount : invalid value", "code": "order_amount_invalid"}
    )

    with pytest.raises(GatewayError) as excinfo:
        _create(cashfree)

    err = excinfo.value
    assert err.upstream_status == 400
    assert err.message == "order_amount : invalid value"
    assert err.detail["code"] == "order_amount_invalid"
    assert err.to_dict() == {"error": "Payment gateway request failed", "kind": "gateway_error"}


@respx.mock
def test_create_order_timeout(cashfree):
    respx.post(f"{BASE}/orders").mock(side_effect=httpx.ReadTimeout("timed out"))

    with pytest.raises(GatewayError, match="gateway_timeout"):
        _create(cashfree)


@respx.mock
def test_create_order_connection_error(cashfree):
    respx.post(f"{BASE}/orders").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(GatewayError, match="gateway_connection_failed"):
        _create(cashfree)


@respx.mock
def test_get_order_normalises_status(cashfree):
    respx.get(f"{BASE}/orders/order_9").respond(200, json={"order_id": "order_9", "order_status": "paid"})

    order = cashfree.get_order("order_9")
    assert order.status == "PAID"
    assert order.amount is None


def test_gateway_order_from_payload_defaults():
    order = GatewayOrder.from_payload({"order_id": 12})
    assert order.order_id == "12"
    assert order.status == ""
    assert order.raw == {"order_id": 12}


def test_webhook_signature_verification(cashfree):
    raw = b'{"order_id":"order_9","order_status":"PAID"}'
    now_ms = str(int(time.time() * 1000))
    signature = sign_webhook(WEBHOOK_SECRET, now_ms, raw)

    assert cashfree.verify_webhook_signature(raw, now_ms, signature)
    assert not cashfree.verify_webhook_signature(raw + b" ", now_ms, signature)
    assert not cashfree.verify_webhook_signature(raw, now_ms, None)
    assert not cashfree.verify_webhook_signature(raw, "yesterday", signature)

    stale = str(int((time.time() - 3600) * 1000))
    assert not cashfree.verify_webhook_signature(raw, stale, sign_webhook(WEBHOOK_SECRET, stale, raw))

    # second-resolution timestamps are accepted too
    now_s = str(int(time.time()))
    assert cashfree.verify_webhook_signature(raw, now_s, sign_webhook(WEBHOOK_SECRET, now_s, raw))
