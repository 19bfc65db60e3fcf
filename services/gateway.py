"""Payment-gateway collaborator.

``PaymentGateway`` is the capability set the booking core depends on;
``CashfreeGateway`` implements it against the Cashfree PG REST API.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx

from config import PaymentSettings
from services.errors import GatewayError

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("ACTIVE", "PAID", "EXPIRED", "FAILED")


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    email: str
    phone: str


@dataclass
class GatewayOrder:
    order_id: str
    status: str
    amount: Decimal | None = None
    currency: str | None = None
    payment_session_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GatewayOrder":
        amount = payload.get("order_amount")
        return cls(
            order_id=str(payload.get("order_id") or ""),
            status=str(payload.get("order_status") or "").upper(),
            amount=Decimal(str(amount)) if amount is not None else None,
            currency=payload.get("order_currency"),
            payment_session_id=payload.get("payment_session_id"),
            raw=payload,
        )


class PaymentGateway(ABC):
    @abstractmethod
    def create_order(
        self,
        order_id: str,
        amount: Decimal,
        currency: str,
        customer: Customer,
        return_url: str,
        notify_url: str,
        meta: dict[str, Any] | None = None,
    ) -> GatewayOrder:
        """Create an order; raises GatewayError on any non-success response."""

    @abstractmethod
    def get_order(self, order_id: str) -> GatewayOrder:
        """Fetch the authoritative order status."""

    @abstractmethod
    def verify_webhook_signature(self, raw_body: bytes, timestamp: str | None, signature: str | None) -> bool:
        """Return True only for deliveries signed with the shared secret."""


def sign_webhook(secret: str, timestamp: str, raw_body: bytes) -> str:
    """base64(HMAC-SHA256(secret, timestamp + raw body))"""
    message = timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def _timestamp_seconds(timestamp: str) -> float:
    value = float(timestamp)
    # Cashfree sends epoch milliseconds
    return value / 1000 if value > 1e11 else value


class CashfreeGateway(PaymentGateway):
    def __init__(self, settings: PaymentSettings, http: httpx.Client | None = None):
        self.settings = settings
        self.http = http or httpx.Client(
            base_url=settings.api_url,
            timeout=httpx.Timeout(settings.timeout_seconds),
        )

    def close(self) -> None:
        self.http.close()

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self.settings.app_id,
            "x-client-secret": self.settings.secret_key,
            "x-api-version": self.settings.api_version,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        try:
            response = self.http.request(method, path, json=json, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.error("Cashfree %s %s timed out after %ss", method, path, self.settings.timeout_seconds)
            raise GatewayError(f"gateway_timeout: {method} {path}") from exc
        except httpx.HTTPError as exc:
            logger.error("Cashfree %s %s failed: %s", method, path, exc)
            raise GatewayError(f"gateway_connection_failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}

        if response.status_code >= 400:
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.error(
                "Cashfree %s %s returned %s: %s",
                method, path, response.status_code, payload,
            )
            raise GatewayError(
                message or f"Cashfree API error: {response.status_code}",
                status=response.status_code,
                detail=payload,
            )
        if not isinstance(payload, dict):
            raise GatewayError("Cashfree returned an unexpected payload", status=response.status_code, detail=payload)
        return payload

    def create_order(self, order_id, amount, currency, customer, return_url, notify_url, meta=None):
        order_meta = {
            "return_url": return_url,
            "notify_url": notify_url,
            "payment_methods": "cc,dc,nb,upi,paylater,emi",
        }
        body = {
            "order_id": order_id,
            "order_amount": float(amount),
            "order_currency": currency,
            "customer_details": {
                "customer_id": customer.id,
                "customer_name": customer.name,
                "customer_email": customer.email,
                "customer_phone": customer.phone,
            },
            "order_meta": order_meta,
        }
        if meta:
            body["order_tags"] = {k: str(v) for k, v in meta.items()}

        payload = self._request("POST", "/orders", json=body)
        logger.info("Cashfree order created: %s", payload.get("order_id"))
        return GatewayOrder.from_payload(payload)

    def get_order(self, order_id):
        return GatewayOrder.from_payload(self._request("GET", f"/orders/{order_id}"))

    def verify_webhook_signature(self, raw_body, timestamp, signature):
        secret = self.settings.webhook_secret
        if not secret or not timestamp or not signature:
            return False

        try:
            sent_at = _timestamp_seconds(timestamp)
        except ValueError:
            return False
        if abs(time.time() - sent_at) > self.settings.webhook_tolerance_seconds:
            logger.warning("Rejecting webhook with stale timestamp %s", timestamp)
            return False

        expected = sign_webhook(secret, timestamp, raw_body)
        return hmac.compare_digest(expected, signature)
