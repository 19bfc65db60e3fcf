from .health import health_bp
from .auth import auth_bp
from .locations import locations_bp
from .grounds import grounds_bp
from .booking import booking_bp
from .payments import payments_bp
from .cashfree_webhook import webhook_bp
from .admin import admin_bp

ALL_BLUEPRINTS = (
    health_bp,
    auth_bp,
    locations_bp,
    grounds_bp,
    booking_bp,
    payments_bp,
    webhook_bp,
    admin_bp,
)
