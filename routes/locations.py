from flask import Blueprint, jsonify

from models.location import Location
from utils.serialize import location_to_dict

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
def list_locations():
    rows = Location.query.filter_by(is_active=True).order_by(Location.city_name.asc()).all()
    return jsonify(locations=[location_to_dict(loc) for loc in rows]), 200
