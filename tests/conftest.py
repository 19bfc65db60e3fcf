from decimal import Decimal

import httpx
import pytest

from app import create_app
from config import Config, PaymentSettings
from models import db
from models.ground import Ground
from models.user import Role, User
from security.password import hash_password
from security.session import create_session
from services.gateway import CashfreeGateway, GatewayOrder

WEBHOOK_SECRET = "whsec_test"


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_TABLES = True
    BCRYPT_ROUNDS = 4
    SMTP_HOST = None

    CASHFREE_APP_ID = "TEST_APP_ID"
    CASHFREE_SECRET_KEY = "TEST_SECRET"
    CASHFREE_MODE = "test"
    CASHFREE_WEBHOOK_SECRET = WEBHOOK_SECRET
    PUBLIC_BASE_URL = "http://testserver"


def payment_settings() -> PaymentSettings:
    return PaymentSettings.from_mapping({k: getattr(TestConfig, k) for k in dir(TestConfig) if k.isupper()})


class FakeGateway(CashfreeGateway):
    """Cashfree stand-in: orders live in memory, signatures use the real check."""

    def __init__(self, settings: PaymentSettings):
        super().__init__(settings, http=httpx.Client(base_url=settings.api_url))
        self.created = []
        self.fetched = []
        self.statuses = {}
        self.create_error = None

    def create_order(self, order_id, amount, currency, customer, return_url, notify_url, meta=None):
        if self.create_error is not None:
            raise self.create_error
        self.created.append({
            "order_id": order_id,
            "amount": amount,
            "currency": currency,
            "customer": customer,
            "return_url": return_url,
            "notify_url": notify_url,
            "meta": meta,
        })
        self.statuses[order_id] = "ACTIVE"
        return GatewayOrder(
            order_id=order_id,
            status="ACTIVE",
            amount=amount,
            currency=currency,
            payment_session_id=f"session_{order_id}",
            raw={"order_id": order_id, "order_status": "ACTIVE", "order_amount": float(amount)},
        )

    def get_order(self, order_id):
        self.fetched.append(order_id)
        status = self.statuses.get(order_id, "ACTIVE")
        return GatewayOrder(
            order_id=order_id,
            status=status,
            payment_session_id=f"session_{order_id}",
            raw={"order_id": order_id, "order_status": status},
        )

    def set_status(self, order_id, status):
        self.statuses[order_id] = status


@pytest.fixture()
def gateway():
    gw = FakeGateway(payment_settings())
    yield gw
    gw.close()


@pytest.fixture()
def app(gateway):
    app = create_app(TestConfig, gateway=gateway)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(app, email, phone, name="Test Player", password="secret123", roles=("PLAYER",)):
    """Create a user and return (user_id, bearer token)."""
    with app.test_request_context():
        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            is_verified=True,
        )
        for role_name in roles:
            user.roles.append(Role.query.filter_by(name=role_name).one())
        db.session.add(user)
        db.session.commit()
        token = create_session(user.id)
        return user.id, token


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def player(app):
    return make_user(app, "player@example.com", "9000000001")


@pytest.fixture()
def other_player(app):
    return make_user(app, "other@example.com", "9000000002", name="Other Player")


@pytest.fixture()
def admin(app):
    return make_user(app, "admin@example.com", "9000000009", name="Admin", roles=("PLAYER", "ADMIN"))


@pytest.fixture()
def ground_id(app, admin):
    with app.app_context():
        ground = Ground(
            name="Green Box Arena",
            description="Floodlit box cricket ground",
            city_id="mumbai",
            city_name="Mumbai",
            address="Andheri West",
            hourly_rate=Decimal("500.00"),
            owner_user_id=admin[0],
        )
        db.session.add(ground)
        db.session.commit()
        return ground.id
