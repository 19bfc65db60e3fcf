"""Resolve ``g.user`` from the bearer session on every request."""
from functools import wraps

from flask import g, jsonify

from models import db
from models.user import User
from security.session import get_session_from_request


def load_current_user():
    g.user = None
    g.session = get_session_from_request()
    if g.session is not None:
        g.user = db.session.get(User, g.session.user_id)


def unauthorized(message="Authentication required"):
    resp = jsonify(error=message)
    resp.headers["WWW-Authenticate"] = 'Bearer realm="boxcric"'
    return resp, 401


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return unauthorized()
        return fn(*args, **kwargs)
    return wrapper
