"""Tests for the two-step OTP login."""

from datetime import timedelta

import jwt
import pytest
import redis
from freezegun import freeze_time

from config import settings
from Audit_module.Audit_model import ActivityLog, LoginLog
from Login_module.OTP import otp_manager
from Login_module.OTP.OTP_model import OTPCode
from Login_module.OTP.OTP_crud import create_otp, purge_expired_otps
from Login_module.User.user_crud import create_user


@pytest.fixture
def sent_codes(monkeypatch):
    """Capture codes instead of mailing them."""
    outbox = {}

    def fake_send(to, otp):
        outbox[to] = otp
        return True

    monkeypatch.setattr("Login_module.OTP.OTP_router.send_otp_email", fake_send)
    return outbox


def _login(client, email, sent_codes):
    assert client.post("/auth/request-otp", json={"email": email}).status_code == 200
    return client.post("/auth/verify-otp", json={"email": email, "otp": sent_codes[email]})


class TestRequestOTP:
    def test_unknown_email_is_not_found(self, client, sent_codes):
        resp = client.post("/auth/request-otp", json={"email": "nobody@example.com"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "User not found"
        assert sent_codes == {}

    def test_issues_six_digit_code_stored_hashed(self, client, db, sales_user, sent_codes):
        resp = client.post("/auth/request-otp", json={"email": "Sales@Example.com"})
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "OTP sent to your email"}

        code = sent_codes["sales@example.com"]
        assert len(code) == 6 and code.isdigit()

        row = db.query(OTPCode).filter(OTPCode.email == "sales@example.com").one()
        assert row.otp_hash != code
        assert row.is_used is False

        log = db.query(LoginLog).filter(LoginLog.session_type == "otp_request").one()
        assert log.user_id == sales_user.id
        assert log.browser_name == "Chrome"

    def test_invalid_email_rejected(self, client):
        resp = client.post("/auth/request-otp", json={"email": "not-an-email"})
        assert resp.status_code == 422
        assert resp.json()["status"] == "error"

    def test_mail_failure_does_not_fail_request(self, client, sales_user, monkeypatch):
        monkeypatch.setattr("Login_module.OTP.OTP_router.send_otp_email", lambda to, otp: False)
        resp = client.post("/auth/request-otp", json={"email": sales_user.email})
        assert resp.status_code == 200


class TestVerifyOTP:
    def test_success_issues_credential(self, client, db, sales_user, sent_codes):
        resp = _login(client, sales_user.email, sent_codes)
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 86400
        assert body["user"] == {
            "id": sales_user.id,
            "email": "sales@example.com",
            "name": "Sam Sales",
            "role": "sales",
        }

        claims = jwt.decode(body["token"], settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert claims["sub"] == str(sales_user.id)
        assert claims["email"] == "sales@example.com"
        assert claims["role"] == "sales"
        assert "exp" in claims

        db.expire_all()
        assert sales_user.last_login is not None
        login = db.query(LoginLog).filter(LoginLog.session_type == "login").one()
        assert login.success is True
        assert db.query(ActivityLog).filter(ActivityLog.action == "login").count() == 1

    def test_code_is_single_use(self, client, sales_user, sent_codes):
        assert _login(client, sales_user.email, sent_codes).status_code == 200
        resp = client.post(
            "/auth/verify-otp",
            json={"email": sales_user.email, "otp": sent_codes[sales_user.email]},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid or expired OTP"

    def test_wrong_code_logged_as_failed_login(self, client, db, sales_user, sent_codes):
        client.post("/auth/request-otp", json={"email": sales_user.email})
        wrong = "000000" if sent_codes[sales_user.email] != "000000" else "111111"
        resp = client.post("/auth/verify-otp", json={"email": sales_user.email, "otp": wrong})
        assert resp.status_code == 400

        failed = db.query(LoginLog).filter(LoginLog.session_type == "login").one()
        assert failed.success is False
        assert failed.user_id == sales_user.id

    @pytest.mark.parametrize("template", ["{code}7", "{short}x", " {short} "])
    def test_malformed_code_rejected_without_consuming(self, client, db, sales_user, sent_codes, template):
        client.post("/auth/request-otp", json={"email": sales_user.email})
        code = sent_codes[sales_user.email]
        malformed = template.format(code=code, short=code[:5])
        resp = client.post("/auth/verify-otp", json={"email": sales_user.email, "otp": malformed})
        assert resp.status_code == 400
        assert db.query(LoginLog).filter(LoginLog.success.is_(False)).count() == 1

        resp = client.post("/auth/verify-otp", json={"email": sales_user.email, "otp": code})
        assert resp.status_code == 200

    def test_code_expires_after_ten_minutes(self, client, sales_user, sent_codes):
        with freeze_time("2026-03-02 10:00:00") as frozen:
            client.post("/auth/request-otp", json={"email": sales_user.email})
            frozen.tick(timedelta(minutes=10, seconds=1))
            resp = client.post(
                "/auth/verify-otp",
                json={"email": sales_user.email, "otp": sent_codes[sales_user.email]},
            )
        assert resp.status_code == 400

    def test_code_valid_just_before_expiry(self, client, sales_user, sent_codes):
        with freeze_time("2026-03-02 10:00:00") as frozen:
            client.post("/auth/request-otp", json={"email": sales_user.email})
            frozen.tick(timedelta(minutes=9, seconds=59))
            resp = client.post(
                "/auth/verify-otp",
                json={"email": sales_user.email, "otp": sent_codes[sales_user.email]},
            )
        assert resp.status_code == 200

    def test_inactive_user_cannot_log_in(self, client, db, sent_codes):
        create_user(db, email="gone@example.com", name="Gone", role="sales", is_active=False)
        resp = _login(client, "gone@example.com", sent_codes)
        assert resp.status_code == 401

    def test_verify_rate_limited(self, client, sales_user, monkeypatch):
        monkeypatch.setattr("Login_module.OTP.OTP_router.check_ip_rate_limit", lambda ip: (False, 0))
        resp = client.post("/auth/verify-otp", json={"email": sales_user.email, "otp": "123456"})
        assert resp.status_code == 429


class TestCurrentUser:
    def test_me(self, client, sales_user, auth_header):
        resp = client.get("/auth/me", headers=auth_header(sales_user))
        assert resp.status_code == 200
        assert resp.json()["email"] == "sales@example.com"

    def test_me_requires_credential(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_expired_credential_rejected(self, client, sales_user, auth_header):
        resp = client.get("/auth/me", headers=auth_header(sales_user, expires_delta=-60))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    def test_logout_records_activity(self, client, db, sales_user, auth_header):
        resp = client.post("/auth/logout", headers=auth_header(sales_user))
        assert resp.status_code == 200
        assert db.query(ActivityLog).filter(ActivityLog.action == "logout").count() == 1


class FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = int(value)

    def incr(self, key):
        self.data[key] += 1


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("connection refused")


class TestRequestThrottle:
    def test_disabled_always_allows(self, monkeypatch):
        monkeypatch.setattr(settings, "OTP_RATE_LIMIT_ENABLED", False)
        assert all(otp_manager.can_request_otp("a@example.com") for _ in range(50))

    def test_hourly_limit(self, monkeypatch):
        monkeypatch.setattr(settings, "OTP_RATE_LIMIT_ENABLED", True)
        fake = FakeRedis()
        monkeypatch.setattr(otp_manager, "get_redis_client", lambda: fake)
        allowed = [otp_manager.can_request_otp("a@example.com") for _ in range(settings.OTP_MAX_REQUESTS_PER_HOUR)]
        assert all(allowed)
        assert otp_manager.can_request_otp("a@example.com") is False
        assert otp_manager.can_request_otp("b@example.com") is True

    def test_fails_closed_without_redis(self, monkeypatch):
        monkeypatch.setattr(settings, "OTP_RATE_LIMIT_ENABLED", True)
        monkeypatch.setattr(otp_manager, "get_redis_client", lambda: BrokenRedis())
        assert otp_manager.can_request_otp("a@example.com") is False

    def test_throttled_request_returns_429(self, client, sales_user, monkeypatch):
        monkeypatch.setattr(otp_manager, "can_request_otp", lambda email: False)
        resp = client.post("/auth/request-otp", json={"email": sales_user.email})
        assert resp.status_code == 429


class TestOtpHelpers:
    def test_generate_otp_format(self):
        for _ in range(20):
            assert otp_manager.is_valid_otp_format(otp_manager.generate_otp())

    def test_purge_keeps_recent_codes(self, db):
        with freeze_time("2026-03-01 09:00:00"):
            create_otp(db, email="old@example.com", otp="111111", expires_in=600)
        with freeze_time("2026-03-03 09:00:00"):
            create_otp(db, email="new@example.com", otp="222222", expires_in=600)
            assert purge_expired_otps(db) == 1
        assert [row.email for row in db.query(OTPCode).all()] == ["new@example.com"]
