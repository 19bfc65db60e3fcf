from functools import wraps

from flask import g, jsonify

from utils.auth_context import unauthorized

ADMIN = "ADMIN"


def can_manage(owner_user_id) -> bool:
    """Owners manage their own grounds and bookings; ADMIN manages everything."""
    user = getattr(g, "user", None)
    if user is None:
        return False
    return owner_user_id == user.id or user.has_role(ADMIN)


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return unauthorized()
            if not any(user.has_role(name) for name in role_names):
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
