from models import db
from models.location import Location
from models.user import Role

DEFAULT_ROLES = ["PLAYER", "ADMIN"]

DEFAULT_LOCATIONS = [
    # city_id, city_name, state, latitude, longitude
    ("mumbai", "Mumbai", "Maharashtra", 19.0760, 72.8777),
    ("delhi", "Delhi", "Delhi", 28.7041, 77.1025),
    ("bangalore", "Bangalore", "Karnataka", 12.9716, 77.5946),
    ("hyderabad", "Hyderabad", "Telangana", 17.3850, 78.4867),
    ("chennai", "Chennai", "Tamil Nadu", 13.0827, 80.2707),
    ("kolkata", "Kolkata", "West Bengal", 22.5726, 88.3639),
    ("pune", "Pune", "Maharashtra", 18.5204, 73.8567),
    ("ahmedabad", "Ahmedabad", "Gujarat", 23.0225, 72.5714),
]

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()

def seed_locations() -> int:
    existing = {row.city_id for row in Location.query.all()}
    added = 0
    for city_id, city_name, state, lat, lng in DEFAULT_LOCATIONS:
        if city_id in existing:
            continue
        db.session.add(Location(city_id=city_id, city_name=city_name, state=state, latitude=lat, longitude=lng))
        added += 1
    db.session.commit()
    return added
