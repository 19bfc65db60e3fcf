import re
import datetime as dt
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, field_validator

from models.ground import DEFAULT_TIME_SLOTS

_SLOT_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d-([01]\d|2[0-4]):[0-5]\d$")


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)


def _check_email(value: str) -> str:
    value = value.lower()
    if "@" not in value or len(value) > 255:
        raise ValueError("invalid email")
    return value


Email = Annotated[str, AfterValidator(_check_email)]


# ---------- auth ----------

class RegisterRequest(_Body):
    name: str = Field(min_length=1, max_length=120)
    email: Email
    phone: str = Field(min_length=5, max_length=30)
    password: str = Field(min_length=6, max_length=128)


class VerifyRegistrationRequest(_Body):
    temp_token: str = Field(min_length=1, validation_alias=AliasChoices("temp_token", "tempToken"))
    otp: str = Field(min_length=4, max_length=10)


class LoginRequest(_Body):
    email: Email
    password: str = Field(min_length=1)


# ---------- grounds ----------

class GroundLocation(_Body):
    city_id: str = Field(min_length=1, validation_alias=AliasChoices("city_id", "cityId"))
    city_name: str = Field(min_length=1, validation_alias=AliasChoices("city_name", "cityName"))
    address: str = Field(min_length=1, max_length=255)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class GroundPricing(_Body):
    hourly_rate: Decimal = Field(gt=0, validation_alias=AliasChoices("hourly_rate", "hourlyRate"))
    currency: str = "INR"


def _check_slots(slots: list[str]) -> list[str]:
    if not slots:
        raise ValueError("at least one time slot is required")
    for slot in slots:
        if not _SLOT_RE.match(slot):
            raise ValueError(f"invalid time slot {slot!r}, expected HH:MM-HH:MM")
    if len(set(slots)) != len(slots):
        raise ValueError("duplicate time slots")
    return slots


TimeSlots = Annotated[list[str], AfterValidator(_check_slots)]


class GroundCreateRequest(_Body):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1)
    location: GroundLocation
    pricing: GroundPricing
    images: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    time_slots: TimeSlots = Field(
        default_factory=lambda: list(DEFAULT_TIME_SLOTS),
        validation_alias=AliasChoices("time_slots", "timeSlots"),
    )


class GroundUpdateRequest(_Body):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    location: Optional[GroundLocation] = None
    pricing: Optional[GroundPricing] = None
    images: Optional[list[str]] = None
    amenities: Optional[list[str]] = None
    time_slots: Optional[TimeSlots] = Field(default=None, validation_alias=AliasChoices("time_slots", "timeSlots"))
    is_active: Optional[bool] = None


# ---------- bookings ----------

class BookingCreateRequest(_Body):
    ground_id: int = Field(validation_alias=AliasChoices("ground_id", "groundId"))
    date: dt.date
    time_slot: str = Field(validation_alias=AliasChoices("time_slot", "timeSlot"))
    duration: int = Field(default=1, ge=1, le=16)
    notes: Optional[str] = Field(default=None, max_length=500)


class BookingCancelRequest(_Body):
    reason: Optional[str] = Field(default=None, max_length=120)


class BookingStatusUpdateRequest(_Body):
    status: Literal["pending", "confirmed", "cancelled", "completed"]


# ---------- payments ----------

_booking_id = AliasChoices("booking_id", "bookingId")


class CreateOrderRequest(_Body):
    booking_id: int = Field(validation_alias=_booking_id)


class VerifyPaymentRequest(_Body):
    booking_id: int = Field(validation_alias=_booking_id)
    order_id: Optional[str] = None
    payment_session_id: Optional[str] = None


class PaymentFailedRequest(_Body):
    booking_id: int = Field(validation_alias=_booking_id)
    order_id: Optional[str] = None
    error: Any = None


class WebhookPayload(_Body):
    order_id: str = Field(min_length=1)
    order_status: str = Field(min_length=1)
    order_amount: Optional[Decimal] = None
    order_currency: Optional[str] = None
    payment_session_id: Optional[str] = None

    @field_validator("order_status")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()
