"""Email one-time codes.

The client receives an opaque temp token; the user receives the numeric code by
email. Both are stored hashed and a row is consumed at most once.
"""
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta

from flask import current_app, request

from models import db
from models.email_otp import EmailOTP
from security.session import client_ip, hash_token


def generate_code(length: int) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def _hash_code(code: str) -> str:
    key = current_app.config["SECRET_KEY"].encode("utf-8")
    return hmac.new(key, code.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_otp(email: str, purpose: str, payload: dict | None = None) -> tuple[str, str]:
    """Store a new OTP row. Returns (raw temp token, code)."""
    code = generate_code(current_app.config.get("OTP_LENGTH", 6))
    raw_token = secrets.token_urlsafe(32)
    ttl = current_app.config.get("OTP_TTL_SECONDS", 600)

    row = EmailOTP(
        email=email,
        purpose=purpose,
        token_hash=hash_token(raw_token),
        code_hash=_hash_code(code),
        payload_json=json.dumps(payload) if payload else None,
        expires_at=datetime.utcnow() + timedelta(seconds=ttl),
        ip=client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    )
    db.session.add(row)
    db.session.commit()
    return raw_token, code


def consume_otp(raw_token: str, code: str, purpose: str):
    """
    Returns (row, None) when the code matches, otherwise (None, reason).
    A wrong code counts against OTP_MAX_ATTEMPTS. On success the row is marked
    consumed but not committed, so the caller commits it with its own changes.
    """
    row = EmailOTP.query.filter_by(token_hash=hash_token(raw_token or ""), purpose=purpose).first()
    if not row or row.consumed_at is not None:
        return None, "Invalid or expired OTP"
    if row.expires_at <= datetime.utcnow():
        return None, "Invalid or expired OTP"
    if row.attempts >= current_app.config.get("OTP_MAX_ATTEMPTS", 5):
        return None, "Too many attempts. Request a new code."

    if not hmac.compare_digest(row.code_hash, _hash_code(code or "")):
        row.attempts += 1
        db.session.commit()
        return None, "Invalid or expired OTP"

    row.consumed_at = datetime.utcnow()
    return row, None


def otp_payload(row) -> dict:
    return json.loads(row.payload_json) if row.payload_json else {}
