"""Opaque bearer-token sessions.

``create_session`` hands the raw token to the client once; the database only
ever sees its SHA-256 digest.
"""
import hashlib
import secrets
from datetime import datetime, timedelta

from flask import current_app, request

from models import db
from models.session import Session

TOUCH_INTERVAL = timedelta(minutes=1)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    return forwarded.split(",")[0].strip() or request.remote_addr or "unknown"


def create_session(user_id: int) -> str:
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 7 * 24 * 60 * 60)

    db.session.add(Session(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        ip=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()
    return raw_token


def bearer_token() -> str | None:
    scheme, _, token = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _lookup(raw_token: str | None):
    if not raw_token:
        return None
    return Session.query.filter_by(token_hash=hash_token(raw_token)).first()


def get_session_from_request():
    sess = _lookup(bearer_token())
    now = datetime.utcnow()
    if sess is None or not sess.is_active(now):
        return None

    if sess.last_seen_at is None or now - sess.last_seen_at >= TOUCH_INTERVAL:
        sess.last_seen_at = now
        db.session.commit()
    return sess


def revoke_session(raw_token: str | None) -> bool:
    sess = _lookup(raw_token)
    if sess is None:
        return False
    sess.revoked = True
    db.session.commit()
    return True
