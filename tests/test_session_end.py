"""Tests for /auth/session-end: always 200, closes the session at most once."""

import json
from datetime import timedelta

import pytest
from freezegun import freeze_time

from Audit_module.Audit_model import ActivityLog, LoginLog
from Session_module.Session_model import PageView, UserSession

TOKEN = "session_1718000000000_abc123xyz"
ACK = {"status": "success", "message": "Session end recorded"}


def _end(client, payload, headers=None, raw=False):
    if raw:
        return client.post(
            "/auth/session-end",
            content=payload,
            headers={"Content-Type": "text/plain;charset=UTF-8", **(headers or {})},
        )
    return client.post("/auth/session-end", json=payload, headers=headers or {})


class TestSessionEnd:
    def test_logout_closes_session(self, client, db, sales_user, auth_header):
        with freeze_time("2026-05-04 08:00:00") as frozen:
            client.post(
                "/page-tracking/start",
                json={"sessionToken": TOKEN, "pagePath": "/leads"},
                headers=auth_header(sales_user),
            )
            frozen.tick(timedelta(minutes=5))
            resp = _end(
                client,
                {"reason": "logout", "sessionToken": TOKEN, "sessionDuration": 300000},
                headers=auth_header(sales_user),
            )

        assert resp.status_code == 200
        assert resp.json() == ACK

        session = db.query(UserSession).one()
        assert session.end_reason == "logout"
        assert session.end_time is not None
        assert session.duration == 300

        page_view = db.query(PageView).one()
        assert page_view.exit_time is not None
        assert page_view.duration == 300

        log = db.query(LoginLog).filter(LoginLog.session_type == "logout").one()
        assert log.user_id == sales_user.id
        assert log.email == sales_user.email

        activity = db.query(ActivityLog).filter(ActivityLog.action == "session_end").one()
        assert activity.entity_type == "session"
        assert activity.entity_id == session.id
        assert activity.details["reason"] == "logout"
        assert activity.details["sessionDuration"] == 300000
        assert activity.details["serverDuration"] == 300
        assert activity.details["alreadyClosed"] is False
        assert activity.details["browserName"] == "Chrome"
        assert activity.correlation_id == log.correlation_id

    @pytest.mark.parametrize(
        "reason, action",
        [("timeout", "auto_logout_timeout"), ("browser_close", "auto_logout_browser_close")],
    )
    def test_automatic_reasons(self, client, db, sales_user, start_page, auth_header, reason, action):
        start_page(sales_user, session_token=TOKEN)
        _end(client, {"reason": reason, "sessionToken": TOKEN}, headers=auth_header(sales_user))

        assert db.query(UserSession).one().end_reason == reason
        assert db.query(LoginLog).filter(LoginLog.session_type == reason).count() == 1
        assert db.query(ActivityLog).filter(ActivityLog.action == action).count() == 1

    def test_expired_credential_in_beacon_body(self, client, db, sales_user, start_page, make_token):
        start_page(sales_user, session_token=TOKEN)
        body = json.dumps({
            "reason": "timeout",
            "sessionToken": TOKEN,
            "token": make_token(sales_user, expires_delta=-3600),
        })
        resp = _end(client, body, raw=True)

        assert resp.status_code == 200
        assert db.query(UserSession).one().end_reason == "timeout"
        assert db.query(LoginLog).filter(LoginLog.session_type == "timeout").count() == 1

    def test_garbage_credential_writes_nothing(self, client, db, sales_user, start_page):
        start_page(sales_user, session_token=TOKEN)
        resp = _end(client, {"reason": "logout", "sessionToken": TOKEN, "token": "not.a.jwt"})

        assert resp.status_code == 200
        assert resp.json() == ACK
        assert db.query(UserSession).one().end_time is None
        assert db.query(LoginLog).filter(LoginLog.session_type == "logout").count() == 0
        assert db.query(ActivityLog).count() == 0

    def test_no_credential(self, client, db):
        resp = _end(client, {"reason": "logout"})
        assert resp.status_code == 200
        assert db.query(LoginLog).count() == 0

    @pytest.mark.parametrize("body", ["", "reason=logout", "[1, 2]"])
    def test_unreadable_body_acknowledged(self, client, db, sales_user, auth_header, body):
        resp = _end(client, body, headers=auth_header(sales_user), raw=True)
        assert resp.status_code == 200
        assert resp.json() == ACK
        assert db.query(LoginLog).count() == 0

    def test_unknown_reason_acknowledged(self, client, db, sales_user, start_page, auth_header):
        start_page(sales_user, session_token=TOKEN)
        resp = _end(client, {"reason": "crashed", "sessionToken": TOKEN}, headers=auth_header(sales_user))
        assert resp.status_code == 200
        assert db.query(UserSession).one().end_time is None

    def test_second_report_does_not_reclose(self, client, db, sales_user, start_page, auth_header):
        start_page(sales_user, session_token=TOKEN)
        _end(client, {"reason": "timeout", "sessionToken": TOKEN}, headers=auth_header(sales_user))
        db.expire_all()
        first_end = db.query(UserSession).one().end_time

        resp = _end(client, {"reason": "browser_close", "sessionToken": TOKEN}, headers=auth_header(sales_user))
        assert resp.status_code == 200

        db.expire_all()
        session = db.query(UserSession).one()
        assert session.end_reason == "timeout"
        assert session.end_time == first_end
        late = db.query(ActivityLog).filter(ActivityLog.action == "auto_logout_browser_close").one()
        assert late.details["alreadyClosed"] is True

    def test_without_session_token_closes_latest_open_session(
        self, client, db, sales_user, start_page, auth_header
    ):
        with freeze_time("2026-05-04 08:00:00") as frozen:
            start_page(sales_user, session_token="session_1_older")
            frozen.tick(timedelta(minutes=1))
            start_page(sales_user, session_token="session_2_newer")
            _end(client, {"reason": "logout"}, headers=auth_header(sales_user))

        sessions = {s.session_token: s for s in db.query(UserSession).all()}
        assert sessions["session_2_newer"].end_reason == "logout"
        assert sessions["session_1_older"].end_time is None

    def test_token_of_another_user_left_open(self, client, db, sales_user, support_user, start_page, auth_header):
        start_page(sales_user, session_token=TOKEN)
        resp = _end(client, {"reason": "logout", "sessionToken": TOKEN}, headers=auth_header(support_user))
        assert resp.status_code == 200
        assert db.query(UserSession).one().end_time is None

    def test_negative_client_duration_clamped(self, client, db, sales_user, start_page, auth_header):
        start_page(sales_user, session_token=TOKEN)
        _end(
            client,
            {"reason": "logout", "sessionToken": TOKEN, "sessionDuration": -50},
            headers=auth_header(sales_user),
        )
        activity = db.query(ActivityLog).filter(ActivityLog.action == "session_end").one()
        assert activity.details["sessionDuration"] == 0

    def test_body_token_wins_over_header(self, client, db, sales_user, support_user, start_page, auth_header, make_token):
        start_page(sales_user, session_token=TOKEN)
        _end(
            client,
            {"reason": "logout", "sessionToken": TOKEN, "token": make_token(sales_user)},
            headers=auth_header(support_user),
        )
        assert db.query(UserSession).one().end_reason == "logout"


class TestSessionEndTime:
    def test_client_timestamp_used_as_end_time(self, client, db, sales_user, auth_header):
        # A closed tab is reported at the next boot, long after it went away
        with freeze_time("2026-05-04 08:00:00") as frozen:
            client.post(
                "/page-tracking/start",
                json={"sessionToken": TOKEN, "pagePath": "/leads"},
                headers=auth_header(sales_user),
            )
            frozen.tick(timedelta(hours=8))
            _end(
                client,
                {"reason": "browser_close", "sessionToken": TOKEN, "timestamp": "2026-05-04T13:40:00+05:30"},
                headers=auth_header(sales_user),
            )

        session = db.query(UserSession).one()
        assert session.end_reason == "browser_close"
        assert session.duration == 600
        assert db.query(PageView).one().duration == 600

    @pytest.mark.parametrize(
        "timestamp, expected",
        [
            ("2026-05-04T23:00:00+05:30", 1800),  # future: now
            ("2026-05-04T12:00:00+05:30", 0),  # before the session: its start
        ],
    )
    def test_implausible_timestamp_clamped(self, client, db, sales_user, auth_header, timestamp, expected):
        with freeze_time("2026-05-04 08:00:00") as frozen:
            client.post(
                "/page-tracking/start",
                json={"sessionToken": TOKEN, "pagePath": "/leads"},
                headers=auth_header(sales_user),
            )
            frozen.tick(timedelta(minutes=30))
            _end(
                client,
                {"reason": "logout", "sessionToken": TOKEN, "timestamp": timestamp},
                headers=auth_header(sales_user),
            )

        assert db.query(UserSession).one().duration == expected
