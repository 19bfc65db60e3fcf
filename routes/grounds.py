from datetime import date

from flask import Blueprint, g, jsonify, request
from sqlalchemy import or_

from models import db
from models.ground import Ground
from schemas import parse_body
from schemas.requests import GroundCreateRequest, GroundUpdateRequest
from security.rbac import can_manage
from services import booking_payments
from services.errors import NotFoundError, ValidationError
from utils.audit import log_event
from utils.auth_context import login_required
from utils.pagination import paginate, pagination_to_dict
from utils.serialize import ground_to_dict

grounds_bp = Blueprint("grounds", __name__, url_prefix="/api/grounds")


def _get_ground(ground_id: int) -> Ground:
    ground = db.session.get(Ground, ground_id)
    if not ground:
        raise NotFoundError("Ground not found")
    return ground


@grounds_bp.get("")
def list_grounds():
    city_id = (request.args.get("city_id") or request.args.get("cityId") or "").strip()
    search = (request.args.get("search") or "").strip()

    q = Ground.query.filter(Ground.is_active.is_(True))
    if city_id:
        q = q.filter(Ground.city_id == city_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Ground.name.ilike(like), Ground.description.ilike(like)))

    page = paginate(q.order_by(Ground.created_at.desc(), Ground.id.desc()))
    return jsonify(
        grounds=[ground_to_dict(gr) for gr in page.items],
        pagination=pagination_to_dict(page),
    ), 200


@grounds_bp.get("/<int:ground_id>")
def get_ground(ground_id: int):
    return jsonify(ground=ground_to_dict(_get_ground(ground_id))), 200


@grounds_bp.get("/<int:ground_id>/availability")
def ground_availability(ground_id: int):
    ground = _get_ground(ground_id)
    if not ground.is_active:
        raise NotFoundError("Ground not found")

    date_str = request.args.get("date")
    if not date_str:
        raise ValidationError("date is required (YYYY-MM-DD)")
    try:
        day = date.fromisoformat(date_str)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")

    booked = booking_payments().booked_slots(ground.id, day)
    return jsonify(
        ground_id=ground.id,
        date=day.isoformat(),
        slots=[{"time_slot": slot, "available": slot not in booked} for slot in ground.time_slots or []],
    ), 200


@grounds_bp.post("")
@login_required
def create_ground():
    body = parse_body(GroundCreateRequest)

    ground = Ground(
        name=body.name,
        description=body.description,
        city_id=body.location.city_id,
        city_name=body.location.city_name,
        address=body.location.address,
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        images=body.images,
        amenities=body.amenities,
        hourly_rate=body.pricing.hourly_rate,
        currency=body.pricing.currency,
        time_slots=body.time_slots,
        owner_user_id=g.user.id,
    )
    db.session.add(ground)
    db.session.commit()

    log_event("GROUND_CREATE", user_id=g.user.id, entity="ground", entity_id=ground.id)
    return jsonify(message="Ground created successfully", ground=ground_to_dict(ground)), 201


@grounds_bp.put("/<int:ground_id>")
@login_required
def update_ground(ground_id: int):
    ground = _get_ground(ground_id)
    if not can_manage(ground.owner_user_id):
        return jsonify(error="Not authorized to update this ground"), 403

    body = parse_body(GroundUpdateRequest)
    fields = body.model_dump(exclude_unset=True, exclude={"location", "pricing"})
    for name, value in fields.items():
        setattr(ground, name, value)

    if body.location is not None:
        ground.city_id = body.location.city_id
        ground.city_name = body.location.city_name
        ground.address = body.location.address
        ground.latitude = body.location.latitude
        ground.longitude = body.location.longitude
    if body.pricing is not None:
        ground.hourly_rate = body.pricing.hourly_rate
        ground.currency = body.pricing.currency

    db.session.commit()
    log_event("GROUND_UPDATE", user_id=g.user.id, entity="ground", entity_id=ground.id, metadata={"fields": sorted(body.model_fields_set)})
    return jsonify(message="Ground updated successfully", ground=ground_to_dict(ground)), 200


@grounds_bp.delete("/<int:ground_id>")
@login_required
def delete_ground(ground_id: int):
    ground = _get_ground(ground_id)
    if not can_manage(ground.owner_user_id):
        return jsonify(error="Not authorized to delete this ground"), 403

    # bookings keep referencing the ground, so it is only deactivated
    ground.is_active = False
    db.session.commit()

    log_event("GROUND_DEACTIVATE", user_id=g.user.id, entity="ground", entity_id=ground.id)
    return jsonify(message="Ground deleted successfully"), 200
