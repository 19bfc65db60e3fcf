from datetime import datetime

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import Role, User
from schemas import parse_body
from schemas.requests import LoginRequest, RegisterRequest, VerifyRegistrationRequest
from security.bruteforce import is_locked, register_failure, reset_attempts
from security.otp import consume_otp, issue_otp, otp_payload
from security.password import hash_password, verify_password
from security.session import bearer_token, create_session, revoke_session
from utils.audit import log_event
from utils.auth_context import login_required
from utils.emailer import send_otp_email
from utils.serialize import user_to_dict

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _existing_user(email: str, phone: str):
    return User.query.filter(or_(User.email == email, User.phone == phone)).first()


@auth_bp.post("/register")
def register():
    body = parse_body(RegisterRequest)

    if _existing_user(body.email, body.phone):
        log_event("REGISTER_FAIL_EXISTS", metadata={"email": body.email})
        return jsonify(error="User with this email or phone already exists"), 409

    temp_token, code = issue_otp(
        body.email,
        "registration",
        payload={
            "name": body.name,
            "email": body.email,
            "phone": body.phone,
            "password_hash": hash_password(body.password),
        },
    )

    ok, error = send_otp_email(body.email, code, "registration")
    if not ok:
        log_event("REGISTER_OTP_SEND_FAIL", metadata={"email": body.email, "error": error})
        return jsonify(error="Failed to send email. Please try again."), 502

    log_event("REGISTER_OTP_SENT", metadata={"email": body.email})
    return jsonify(
        message="OTP sent to your email. Please verify to complete registration.",
        temp_token=temp_token,
        expires_in=current_app.config.get("OTP_TTL_SECONDS", 600),
    ), 200


@auth_bp.post("/verify-registration")
def verify_registration():
    body = parse_body(VerifyRegistrationRequest)

    row, reason = consume_otp(body.temp_token, body.otp, "registration")
    if not row:
        log_event("REGISTER_OTP_FAIL", metadata={"reason": reason})
        return jsonify(error=reason), 400

    data = otp_payload(row)
    user = User(
        name=data["name"],
        email=data["email"],
        phone=data["phone"],
        password_hash=data["password_hash"],
        is_verified=True,
    )
    db.session.add(user)

    player_role = Role.query.filter_by(name="PLAYER").first()
    if player_role:
        user.roles.append(player_role)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="User with this email or phone already exists"), 409

    token = create_session(user.id)
    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(message="Registration successful!", token=token, user=user_to_dict(user)), 201


@auth_bp.post("/login")
def login():
    body = parse_body(LoginRequest)

    locked, seconds_left = is_locked(body.email)
    if locked:
        log_event("LOGIN_LOCKED", metadata={"email": body.email, "seconds_left": seconds_left})
        return jsonify(error="Account temporarily locked. Try again later.", retry_after_seconds=seconds_left), 429

    user = User.query.filter_by(email=body.email).first()
    if not user or not verify_password(body.password, user.password_hash):
        fail_count, locked_now = register_failure(body.email)
        log_event(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            metadata={"email": body.email, "fail_count": fail_count, "locked_now": locked_now},
        )
        if locked_now:
            return jsonify(
                error="Too many failed attempts. Account locked.",
                lockout_minutes=current_app.config.get("LOCKOUT_MINUTES", 1),
            ), 429
        return jsonify(error="Invalid credentials"), 401

    reset_attempts(body.email)

    user.last_login_at = datetime.utcnow()
    db.session.commit()

    token = create_session(user.id)
    log_event("LOGIN_SUCCESS", user_id=user.id)
    return jsonify(message="Login successful!", token=token, user=user_to_dict(user)), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user=user_to_dict(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(bearer_token())
    log_event("LOGOUT", user_id=g.user.id)
    return jsonify(message="Logged out"), 200
