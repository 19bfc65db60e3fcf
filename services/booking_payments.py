"""Slot reservation and payment reconciliation for bookings.

A booking moves through ``(status, payment_status)`` pairs:

    (pending, pending) --PAID-------------> (confirmed, completed)
    (pending, pending) --EXPIRED/FAILED---> (cancelled, failed)

A booking may accumulate several gateway orders when an earlier one expires
before the player pays. ``Booking.cashfree_order_id`` names the current one and
``BookingOrder`` remembers all of them, so a late PAID for a superseded order
still lands on its booking. Only the current order can fail a booking.

Both the client verification call and the gateway webhook funnel into
``_apply_gateway_status``. Every transition is a conditional UPDATE guarded by
the expected prior state, so a duplicated or racing trigger matches zero rows
and leaves the first writer's confirmation code and timestamps untouched.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import PaymentSettings
from models import db
from models.booking import ACTIVE_BOOKING_STATUSES, BOOKING_STATUSES, Booking
from models.booking_order import BookingOrder
from models.ground import Ground
from models.user import User
from services.errors import (
    AmountError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from services.gateway import Customer, PaymentGateway

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
FAILED_GATEWAY_STATUSES = ("EXPIRED", "FAILED")
NEEDS_REVIEW = "needs_review"

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_code() -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
    return f"BK{int(time.time() * 1000)}{suffix}"


def generate_confirmation_code() -> str:
    return f"BC{secrets.randbelow(1_000_000):06d}"


def to_minor_units(amount) -> int:
    """Convert a rupee amount to paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PaymentOrder:
    order_id: str
    payment_session_id: str | None
    order_status: str
    amount: Decimal
    currency: str

    def to_dict(self) -> dict:
        return {
            "id": self.order_id,
            "payment_session_id": self.payment_session_id,
            "order_status": self.order_status,
            "amount": float(self.amount),
            "currency": self.currency,
        }


@dataclass
class ReconciliationResult:
    outcome: str  # confirmed | pending | failed | needs_review
    booking: Booking
    gateway_status: str | None = None
    changed: bool = False


def _outcome(booking: Booking) -> str:
    if booking.status == "cancelled":
        return "failed"
    if booking.payment_status == "completed":
        return "confirmed"
    if booking.payment_status == "failed":
        return "failed"
    return "pending"


class BookingPaymentService:
    def __init__(self, settings: PaymentSettings, gateway: PaymentGateway):
        self.settings = settings
        self.gateway = gateway

    # ---------- persistence helpers ----------

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during %s", action)
            raise PersistenceError(f"{action} failed: {exc}") from exc

    def _transition(self, guard, values: dict, action: str) -> bool:
        """Apply ``values`` only if the row still matches ``guard``."""
        values = {**values, "updated_at": datetime.utcnow()}
        try:
            count = Booking.query.filter(*guard).update(values, synchronize_session=False)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during %s", action)
            raise PersistenceError(f"{action} failed: {exc}") from exc
        self._commit(action)
        return count == 1

    # ---------- slot availability ----------

    def is_slot_available(self, ground_id: int, day: date, time_slot: str) -> bool:
        existing = (
            Booking.query
            .filter(
                Booking.ground_id == ground_id,
                Booking.date == day,
                Booking.time_slot == time_slot,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .first()
        )
        return existing is None

    def booked_slots(self, ground_id: int, day: date) -> set[str]:
        rows = (
            Booking.query
            .with_entities(Booking.time_slot)
            .filter(
                Booking.ground_id == ground_id,
                Booking.date == day,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .all()
        )
        return {r.time_slot for r in rows}

    def check_and_reserve_slot(self, ground_id, day, time_slot, user_id, duration=1, notes=None) -> Booking:
        if isinstance(day, datetime):
            day = day.date()
        if duration < 1:
            raise ValidationError("duration must be at least 1")

        ground = db.session.get(Ground, ground_id)
        if not ground or not ground.is_active:
            raise NotFoundError("Ground not found")
        if time_slot not in (ground.time_slots or []):
            raise ValidationError("Time slot is not offered by this ground")

        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        if not self.is_slot_available(ground.id, day, time_slot):
            raise ConflictError("This time slot is already booked")

        booking = Booking(
            booking_code=generate_booking_code(),
            user_id=user.id,
            ground_id=ground.id,
            date=day,
            time_slot=time_slot,
            duration=duration,
            total_amount=Decimal(str(ground.hourly_rate)) * duration,
            notes=notes,
            status="pending",
            payment_status="pending",
        )
        db.session.add(booking)
        user.total_bookings = User.total_bookings + 1

        try:
            db.session.commit()
        except IntegrityError as exc:
            # uq_booking_active_slot: another request took the slot after our check
            db.session.rollback()
            logger.info("Slot race lost for ground=%s date=%s slot=%s", ground_id, day, time_slot)
            raise ConflictError("This time slot is already booked") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during slot reservation")
            raise PersistenceError(f"slot reservation failed: {exc}") from exc

        logger.info("Reserved %s for ground=%s on %s %s", booking.booking_code, ground.id, day, time_slot)
        return booking

    # ---------- order creation ----------

    def _new_order_id(self, booking: Booking) -> str:
        return f"order_{booking.id}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"

    def create_payment_order(self, booking_id: int, user_id: int) -> PaymentOrder:
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.user_id != user_id:
            raise AuthorizationError("Not authorized to pay for this booking")
        if booking.status != "pending" or booking.payment_status != "pending":
            raise ConflictError("Booking is not awaiting payment")

        amount = Decimal(str(booking.total_amount))
        minimum = self.settings.min_amount_minor
        if to_minor_units(amount) < minimum:
            raise AmountError(
                f"Booking amount must be at least {Decimal(minimum) / 100:.2f} {self.settings.currency}"
            )

        prior = booking.cashfree_order_id
        if prior:
            existing = self.gateway.get_order(prior)
            existing_status = (existing.status or "").upper()
            if existing_status == "PAID":
                self._apply_gateway_status(
                    booking, prior, existing_status,
                    snapshot=existing.raw, session_id=existing.payment_session_id,
                )
                raise ConflictError("Booking is already paid")
            if existing_status not in FAILED_GATEWAY_STATUSES:
                logger.info("Reusing open order %s for booking %s", prior, booking.booking_code)
                return PaymentOrder(
                    order_id=prior,
                    payment_session_id=existing.payment_session_id or booking.cashfree_session_id,
                    order_status=existing_status or "ACTIVE",
                    amount=amount,
                    currency=self.settings.currency,
                )
            logger.info("Order %s is %s, creating a new one for booking %s", prior, existing_status, booking.booking_code)

        user = booking.user
        order = self.gateway.create_order(
            order_id=self._new_order_id(booking),
            amount=amount,
            currency=self.settings.currency,
            customer=Customer(id=str(user.id), name=user.name, email=user.email, phone=user.phone),
            return_url=self.settings.return_url.format(booking_id=booking.id),
            notify_url=self.settings.notify_url,
            meta={"booking_id": booking.booking_code, "ground_name": booking.ground.name},
        )

        # kept even when the transition below matches nothing
        db.session.add(BookingOrder(
            booking_id=booking.id,
            order_id=order.order_id,
            payment_session_id=order.payment_session_id,
            amount=amount,
            currency=self.settings.currency,
        ))

        same_order = Booking.cashfree_order_id == prior if prior else Booking.cashfree_order_id.is_(None)
        changed = self._transition(
            (
                Booking.id == booking.id,
                same_order,
                Booking.status == "pending",
                Booking.payment_status == "pending",
            ),
            {
                "cashfree_order_id": order.order_id,
                "cashfree_session_id": order.payment_session_id,
                "payment_status": "pending",
                "payment_details": order.raw,
            },
            "order creation",
        )
        if not changed:
            logger.warning("Booking %s changed while order %s was created", booking.id, order.order_id)
            raise ConflictError("Booking is not awaiting payment")

        db.session.refresh(booking)
        return PaymentOrder(
            order_id=order.order_id,
            payment_session_id=order.payment_session_id,
            order_status=order.status or "ACTIVE",
            amount=amount,
            currency=self.settings.currency,
        )

    # ---------- reconciliation ----------

    def verify_payment(self, booking_id: int, user_id: int, order_id: str | None = None) -> ReconciliationResult:
        booking = Booking.query.filter_by(id=booking_id, user_id=user_id).first()
        if not booking:
            raise NotFoundError("Booking not found")
        if not booking.cashfree_order_id:
            raise ValidationError("No payment order exists for this booking")
        order_id = order_id or booking.cashfree_order_id
        if order_id != booking.cashfree_order_id and not self._owns_order(booking, order_id):
            raise ValidationError("order_id does not match this booking")

        order = self.gateway.get_order(order_id)
        return self._apply_gateway_status(
            booking,
            order_id,
            order.status,
            snapshot=order.raw,
            session_id=order.payment_session_id,
        )

    def reconcile_from_webhook(self, order_id: str, gateway_status: str, snapshot: dict | None = None) -> ReconciliationResult:
        booking = Booking.query.filter_by(cashfree_order_id=order_id).first()
        if not booking:
            record = BookingOrder.query.filter_by(order_id=order_id).first()
            booking = record.booking if record else None
        if not booking:
            raise NotFoundError("Booking not found")
        return self._apply_gateway_status(booking, order_id, gateway_status, snapshot=snapshot)

    def _owns_order(self, booking: Booking, order_id: str) -> bool:
        return BookingOrder.query.filter_by(booking_id=booking.id, order_id=order_id).first() is not None

    def _apply_gateway_status(self, booking, order_id, gateway_status, snapshot=None, session_id=None):
        status = (gateway_status or "").upper()
        now = datetime.utcnow()

        guard = [
            Booking.id == booking.id,
            Booking.status == "pending",
            Booking.payment_status == "pending",
        ]
        if status == "PAID":
            values = {
                "cashfree_order_id": order_id,
                "payment_status": "completed",
                "paid_at": now,
                "status": "confirmed",
                "confirmation_code": generate_confirmation_code(),
                "confirmed_by": SYSTEM_ACTOR,
                "confirmed_at": now,
            }
        elif status in FAILED_GATEWAY_STATUSES:
            values = {
                "payment_status": "failed",
                "status": "cancelled",
                "cancelled_by": SYSTEM_ACTOR,
                "cancelled_at": now,
                "cancel_reason": f"Payment {status.lower()}",
            }
            guard.append(Booking.cashfree_order_id == order_id)
        else:
            if status != "ACTIVE":
                logger.warning("Unrecognised gateway status %r for order %s", gateway_status, order_id)
            return ReconciliationResult(_outcome(booking), booking, gateway_status=status)

        if snapshot is not None:
            values["payment_details"] = snapshot
        if session_id:
            values["cashfree_session_id"] = session_id

        changed = self._transition(guard, values, "payment reconciliation")
        db.session.refresh(booking)

        if changed:
            logger.info("Booking %s reconciled to %s/%s from %s", booking.booking_code, booking.status, booking.payment_status, status)
            return ReconciliationResult(_outcome(booking), booking, gateway_status=status, changed=True)

        if status == "PAID" and (booking.payment_status != "completed" or booking.cashfree_order_id != order_id):
            # paid, but not through an order this booking is completed by
            logger.warning(
                "Order %s reported PAID but booking %s is %s/%s with order %s; needs manual review",
                order_id, booking.booking_code, booking.status, booking.payment_status, booking.cashfree_order_id,
            )
            return ReconciliationResult(NEEDS_REVIEW, booking, gateway_status=status)

        logger.info("Booking %s already reconciled, ignoring %s", booking.booking_code, status)
        return ReconciliationResult(_outcome(booking), booking, gateway_status=status)

    # ---------- client-declared failure ----------

    def record_manual_failure(self, booking_id: int, user_id: int, order_id: str | None = None, error=None) -> Booking:
        booking = Booking.query.filter_by(id=booking_id, user_id=user_id).first()
        if not booking:
            raise NotFoundError("Booking not found")
        if order_id and booking.cashfree_order_id and order_id != booking.cashfree_order_id:
            raise ValidationError("order_id does not match this booking")
        if booking.payment_status == "completed":
            raise ConflictError("Booking is already paid")
        if booking.payment_status == "failed":
            return booking
        if booking.status != "pending":
            raise ConflictError("Booking is not awaiting payment")

        values = {
            "payment_status": "failed",
            "status": "cancelled",
            "cancelled_by": SYSTEM_ACTOR,
            "cancelled_at": datetime.utcnow(),
            "cancel_reason": "Payment failed",
        }
        if error:
            values["payment_details"] = {**(booking.payment_details or {}), "client_error": error}

        changed = self._transition(
            (
                Booking.id == booking.id,
                Booking.status == "pending",
                Booking.payment_status == "pending",
            ),
            values,
            "payment failure recording",
        )
        db.session.refresh(booking)
        if changed or booking.payment_status == "failed":
            return booking
        if booking.payment_status == "completed":
            raise ConflictError("Booking is already paid")
        raise ConflictError("Booking is not awaiting payment")

    # ---------- cancellation / admin ----------

    def cancel_booking(self, booking: Booking, actor: str, reason: str | None = None) -> Booking:
        if booking.status == "cancelled":
            raise ConflictError("Booking is already cancelled")

        changed = self._transition(
            (Booking.id == booking.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES)),
            {
                "status": "cancelled",
                "cancelled_by": actor,
                "cancelled_at": datetime.utcnow(),
                "cancel_reason": reason,
            },
            "booking cancellation",
        )
        db.session.refresh(booking)
        if not changed:
            raise ConflictError("Booking is not cancellable")
        return booking

    def set_status(self, booking: Booking, status: str) -> Booking:
        if status not in BOOKING_STATUSES:
            raise ValidationError("Invalid status")

        booking.status = status
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Another active booking holds this slot") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Persistence failure during status update")
            raise PersistenceError(f"status update failed: {exc}") from exc
        return booking
