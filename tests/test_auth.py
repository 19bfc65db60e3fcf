import pytest

from conftest import auth
from models import db
from models.audit_log import AuditLog
from models.login_attempt import LoginAttempt
from models.user import User

NEW_USER = {
    "name": "New Player",
    "email": "New.Player@Example.com",
    "phone": "9111111111",
    "password": "secret123",
}


@pytest.fixture()
def sent_codes(monkeypatch):
    codes = []

    def fake_send(to_email, code, purpose):
        codes.append((to_email, code, purpose))
        return True, None

    monkeypatch.setattr("routes.auth.send_otp_email", fake_send)
    return codes


def register(client):
    resp = client.post("/api/auth/register", json=NEW_USER)
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["temp_token"]


def test_registration_with_email_otp(app, client, sent_codes):
    temp_token = register(client)
    email, code, purpose = sent_codes[0]
    assert email == "new.player@example.com"
    assert purpose == "registration"

    resp = client.post("/api/auth/verify-registration", json={"tempToken": temp_token, "otp": code})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "new.player@example.com"
    assert body["user"]["is_verified"] is True
    assert body["user"]["roles"] == ["PLAYER"]

    me = client.get("/api/auth/me", headers=auth(body["token"]))
    assert me.status_code == 200
    assert me.get_json()["user"]["phone"] == "9111111111"

    # the code works only once
    again = client.post("/api/auth/verify-registration", json={"tempToken": temp_token, "otp": code})
    assert again.status_code == 400

    with app.app_context():
        assert User.query.filter_by(email="new.player@example.com").count() == 1


def test_wrong_otp_is_rejected(app, client, sent_codes):
    temp_token = register(client)
    code = sent_codes[0][1]
    wrong = "000000" if code != "000000" else "111111"

    resp = client.post("/api/auth/verify-registration", json={"tempToken": temp_token, "otp": wrong})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid or expired OTP"

    with app.app_context():
        assert User.query.count() == 0


def test_register_existing_email_conflicts(client, player, sent_codes):
    resp = client.post("/api/auth/register", json={**NEW_USER, "email": "player@example.com"})
    assert resp.status_code == 409
    assert sent_codes == []


def test_register_validates_body(client, sent_codes):
    resp = client.post("/api/auth/register", json={**NEW_USER, "password": "123"})
    assert resp.status_code == 400
    assert resp.get_json()["details"][0]["field"] == "password"


def test_login_and_logout(client, player):
    resp = client.post("/api/auth/login", json={"email": "Player@Example.com", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.get_json()["token"]
    assert resp.get_json()["user"]["last_login_at"] is not None

    assert client.post("/api/auth/logout", headers=auth(token)).status_code == 200
    assert client.get("/api/auth/me", headers=auth(token)).status_code == 401


def test_login_lockout_after_repeated_failures(app, client, player):
    for _ in range(app.config["MAX_LOGIN_ATTEMPTS"] - 1):
        resp = client.post("/api/auth/login", json={"email": "player@example.com", "password": "wrong"})
        assert resp.status_code == 401

    locking = client.post("/api/auth/login", json={"email": "player@example.com", "password": "wrong"})
    assert locking.status_code == 429

    locked = client.post("/api/auth/login", json={"email": "player@example.com", "password": "secret123"})
    assert locked.status_code == 429
    assert locked.get_json()["retry_after_seconds"] >= 1


def test_failed_logins_are_counted_per_address_and_reset(app, client, player):
    forwarded = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    for _ in range(2):
        resp = client.post(
            "/api/auth/login", json={"email": "player@example.com", "password": "wrong"}, headers=forwarded
        )
        assert resp.status_code == 401

    with app.app_context():
        row = LoginAttempt.query.filter_by(email="player@example.com").one()
        assert row.ip == "203.0.113.7"
        assert row.fail_count == 2
        assert row.last_fail_at is not None
        fail_log = AuditLog.query.filter_by(action="LOGIN_FAIL").order_by(AuditLog.id.desc()).first()
        assert fail_log.details["fail_count"] == 2

    ok = client.post(
        "/api/auth/login", json={"email": "player@example.com", "password": "secret123"}, headers=forwarded
    )
    assert ok.status_code == 200

    with app.app_context():
        row = LoginAttempt.query.filter_by(email="player@example.com").one()
        assert row.fail_count == 0
        assert row.last_fail_at is None
        assert row.locked_until is None


def test_me_requires_token(client):
    missing = client.get("/api/auth/me")
    assert missing.status_code == 401
    assert missing.headers["WWW-Authenticate"].startswith("Bearer")
    assert client.get("/api/auth/me", headers=auth("not-a-session")).status_code == 401


def test_make_admin_command(app, player):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["make-admin", "player@example.com"])
    assert "promoted to ADMIN" in result.output

    with app.app_context():
        user = db.session.get(User, player[0])
        assert user.has_role("ADMIN")
