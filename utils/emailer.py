import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)

OTP_SUBJECTS = {
    "registration": "BoxCric - Verify Your Registration",
    "login": "BoxCric - Login Verification Code",
    "password_reset": "BoxCric - Password Reset Code",
    "email_verification": "BoxCric - Email Verification",
}


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Email to %s failed: %s", to_email, exc)
        return False, str(exc)


def send_otp_email(to_email: str, code: str, purpose: str):
    """
    Returns (ok, error). Without SMTP configured the code is logged instead
    (development mode) and the send counts as successful.
    """
    ttl_minutes = max(current_app.config.get("OTP_TTL_SECONDS", 600) // 60, 1)
    subject = OTP_SUBJECTS.get(purpose, "BoxCric - Verification Code")
    body = (
        f"Use this code to {purpose.replace('_', ' ')} your BoxCric account:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {ttl_minutes} minutes. Do not share this code with anyone.\n"
    )

    if not current_app.config.get("SMTP_HOST"):
        logger.warning("Email not configured; OTP for %s (%s): %s", to_email, purpose, code)
        return True, None

    return send_email(to_email, subject, body)
