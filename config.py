import os
from dataclasses import dataclass

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

CASHFREE_PRODUCTION_URL = "https://api.cashfree.com/pg"
CASHFREE_SANDBOX_URL = "https://sandbox.cashfree.com/pg"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as boxcric.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "boxcric.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Create tables at startup instead of running migrations (dev/test only)
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Bearer session lifetime: 7 days
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_LIFETIME_SECONDS", str(7 * 24 * 60 * 60)))

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 1

    PASSWORD_MIN_LENGTH = 6

    # Email (SMTP). Without SMTP_HOST, OTPs are written to the log instead.
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Email OTP
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", "6"))
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))  # 10 minutes
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))

    # Cashfree payment gateway
    CASHFREE_APP_ID = os.getenv("CASHFREE_APP_ID")
    CASHFREE_SECRET_KEY = os.getenv("CASHFREE_SECRET_KEY")
    CASHFREE_MODE = os.getenv("CASHFREE_MODE", "test")  # test | production
    CASHFREE_API_VERSION = os.getenv("CASHFREE_API_VERSION", "2022-09-01")
    CASHFREE_TIMEOUT_SECONDS = float(os.getenv("CASHFREE_TIMEOUT_SECONDS", "10"))
    # Falls back to CASHFREE_SECRET_KEY, which is what Cashfree signs with
    CASHFREE_WEBHOOK_SECRET = os.getenv("CASHFREE_WEBHOOK_SECRET")
    CASHFREE_WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("CASHFREE_WEBHOOK_TOLERANCE_SECONDS", "300"))

    # Payments
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
    PAYMENT_MIN_AMOUNT_MINOR = int(os.getenv("PAYMENT_MIN_AMOUNT_MINOR", "100"))  # 1 INR
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5000")
    PAYMENT_RETURN_URL = os.getenv("PAYMENT_RETURN_URL")
    PAYMENT_NOTIFY_URL = os.getenv("PAYMENT_NOTIFY_URL")

    # Basic app settings
    DEBUG = False


@dataclass(frozen=True)
class PaymentSettings:
    app_id: str
    secret_key: str
    api_url: str
    api_version: str
    timeout_seconds: float
    webhook_secret: str
    webhook_tolerance_seconds: int
    currency: str
    min_amount_minor: int
    return_url: str
    notify_url: str

    @classmethod
    def from_mapping(cls, config) -> "PaymentSettings":
        """Build the payment settings once from a Flask config mapping."""
        mode = (config.get("CASHFREE_MODE") or "test").lower()
        api_url = CASHFREE_PRODUCTION_URL if mode == "production" else CASHFREE_SANDBOX_URL
        base_url = (config.get("PUBLIC_BASE_URL") or "").rstrip("/")
        secret_key = config.get("CASHFREE_SECRET_KEY") or ""

        return cls(
            app_id=config.get("CASHFREE_APP_ID") or "",
            secret_key=secret_key,
            api_url=api_url,
            api_version=config.get("CASHFREE_API_VERSION", "2022-09-01"),
            timeout_seconds=float(config.get("CASHFREE_TIMEOUT_SECONDS", 10)),
            webhook_secret=config.get("CASHFREE_WEBHOOK_SECRET") or secret_key,
            webhook_tolerance_seconds=int(config.get("CASHFREE_WEBHOOK_TOLERANCE_SECONDS", 300)),
            currency=config.get("PAYMENT_CURRENCY", "INR"),
            min_amount_minor=int(config.get("PAYMENT_MIN_AMOUNT_MINOR", 100)),
            return_url=config.get("PAYMENT_RETURN_URL")
            or base_url + "/payment/callback?booking_id={booking_id}",
            notify_url=config.get("PAYMENT_NOTIFY_URL") or base_url + "/api/payments/webhook",
        )
