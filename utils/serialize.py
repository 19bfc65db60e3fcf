"""JSON shapes for API responses."""


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else None


def user_to_dict(user):
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "is_verified": user.is_verified,
        "total_bookings": user.total_bookings,
        "roles": [r.name for r in user.roles],
        "created_at": _iso(user.created_at),
        "last_login_at": _iso(user.last_login_at),
    }


def ground_to_dict(ground):
    owner = ground.owner
    return {
        "id": ground.id,
        "name": ground.name,
        "description": ground.description,
        "location": {
            "city_id": ground.city_id,
            "city_name": ground.city_name,
            "address": ground.address,
            "latitude": ground.latitude,
            "longitude": ground.longitude,
        },
        "images": ground.images or [],
        "amenities": ground.amenities or [],
        "pricing": {"hourly_rate": _money(ground.hourly_rate), "currency": ground.currency},
        "time_slots": ground.time_slots or [],
        "is_active": ground.is_active,
        "owner": {"id": owner.id, "name": owner.name, "email": owner.email, "phone": owner.phone} if owner else None,
        "rating": {"average": ground.rating_average, "count": ground.rating_count},
        "created_at": _iso(ground.created_at),
    }


def booking_to_dict(booking):
    out = {
        "id": booking.id,
        "booking_code": booking.booking_code,
        "user_id": booking.user_id,
        "ground": {
            "id": booking.ground_id,
            "name": booking.ground.name if booking.ground else None,
            "city_name": booking.ground.city_name if booking.ground else None,
        },
        "date": booking.date.isoformat(),
        "time_slot": booking.time_slot,
        "duration": booking.duration,
        "total_amount": _money(booking.total_amount),
        "notes": booking.notes,
        "status": booking.status,
        "payment": {
            "cashfree_order_id": booking.cashfree_order_id,
            "cashfree_session_id": booking.cashfree_session_id,
            "status": booking.payment_status,
            "paid_at": _iso(booking.paid_at),
        },
        "confirmation": None,
        "cancellation": None,
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
    }
    if booking.confirmation_code:
        out["confirmation"] = {
            "confirmation_code": booking.confirmation_code,
            "confirmed_by": booking.confirmed_by,
            "confirmed_at": _iso(booking.confirmed_at),
        }
    if booking.cancelled_at:
        out["cancellation"] = {
            "cancelled_by": booking.cancelled_by,
            "cancelled_at": _iso(booking.cancelled_at),
            "reason": booking.cancel_reason,
        }
    return out


def location_to_dict(location):
    return {
        "city_id": location.city_id,
        "city_name": location.city_name,
        "state": location.state,
        "latitude": location.latitude,
        "longitude": location.longitude,
    }
