from flask import current_app

from .booking_payments import BookingPaymentService, PaymentOrder, ReconciliationResult
from .errors import BookingError
from .gateway import CashfreeGateway, PaymentGateway

EXTENSION_KEY = "booking_payments"


def init_booking_payments(app, settings, gateway: PaymentGateway | None = None) -> BookingPaymentService:
    service = BookingPaymentService(settings, gateway or CashfreeGateway(settings))
    app.extensions[EXTENSION_KEY] = service
    return service


def booking_payments() -> BookingPaymentService:
    return current_app.extensions[EXTENSION_KEY]
