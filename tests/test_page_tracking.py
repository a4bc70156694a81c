"""Tests for /page-tracking/start, /end and /update."""

import json
from datetime import timedelta

from freezegun import freeze_time

from Audit_module.Audit_model import ActivityLog
from Session_module import Session_crud
from Session_module.Session_model import PageView, UserSession

BEACON_HEADERS = {"Content-Type": "text/plain;charset=UTF-8"}


class TestStartPageView:
    def test_first_page_creates_session(self, client, db, sales_user, start_page):
        body = start_page(sales_user, session_token="session_1_first")
        assert set(body) == {"pageViewId", "sessionId"}

        session = db.query(UserSession).filter(UserSession.id == body["sessionId"]).one()
        assert session.user_id == sales_user.id
        assert session.session_token == "session_1_first"
        assert session.total_pages == 1
        assert session.end_time is None
        assert session.browser_name == "Chrome"
        assert session.device_type == "desktop"
        assert session.operating_system == "Windows"
        assert session.ip_address

        page_view = db.query(PageView).filter(PageView.id == body["pageViewId"]).one()
        assert page_view.page_path == "/leads"
        assert page_view.exit_time is None

    def test_reused_token_joins_session(self, client, db, sales_user, start_page):
        first = start_page(sales_user, session_token="session_1_reuse")
        second = start_page(sales_user, session_token="session_1_reuse", page_path="/customers")

        assert second["sessionId"] == first["sessionId"]
        assert second["pageViewId"] != first["pageViewId"]
        assert db.query(UserSession).count() == 1
        session = db.query(UserSession).one()
        assert session.total_pages == 2

    def test_requires_credential(self, client):
        resp = client.post(
            "/page-tracking/start",
            json={"sessionToken": "session_1_x", "pagePath": "/leads"},
        )
        assert resp.status_code == 401

    def test_token_of_another_user_rejected(self, client, sales_user, support_user, start_page, auth_header):
        start_page(sales_user, session_token="session_1_owned")
        resp = client.post(
            "/page-tracking/start",
            json={"sessionToken": "session_1_owned", "pagePath": "/leads"},
            headers=auth_header(support_user),
        )
        assert resp.status_code == 403

    def test_missing_path_is_validation_error(self, client, sales_user, auth_header):
        resp = client.post(
            "/page-tracking/start",
            json={"sessionToken": "session_1_x"},
            headers=auth_header(sales_user),
        )
        assert resp.status_code == 422
        assert resp.json()["details"][0]["field"] == "pagePath"


class TestEndPageView:
    def test_end_with_header_credential(self, client, db, sales_user, auth_header):
        with freeze_time("2026-04-01 06:00:00") as frozen:
            page_view_id = client.post(
                "/page-tracking/start",
                json={"sessionToken": "session_1_end", "pagePath": "/reports"},
                headers=auth_header(sales_user),
            ).json()["pageViewId"]
            frozen.tick(timedelta(seconds=42))
            resp = client.post(
                "/page-tracking/end",
                json={"pageViewId": page_view_id, "scrollDepth": 64, "interactions": 3},
                headers=auth_header(sales_user),
            )

        assert resp.status_code == 200
        assert resp.json()["message"] == "Page view ended"
        page_view = db.query(PageView).filter(PageView.id == page_view_id).one()
        assert page_view.exit_time is not None
        assert page_view.duration == 42
        assert page_view.scroll_depth == 64
        assert page_view.interactions == 3

    def test_second_end_is_a_no_op(self, client, db, sales_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        first = client.post(
            "/page-tracking/end",
            json={"pageViewId": page_view_id, "interactions": 5},
            headers=auth_header(sales_user),
        )
        db.expire_all()
        exit_time = db.query(PageView).one().exit_time

        second = client.post(
            "/page-tracking/end",
            json={"pageViewId": page_view_id, "interactions": 9},
            headers=auth_header(sales_user),
        )
        assert first.json()["message"] == "Page view ended"
        assert second.status_code == 200
        assert second.json()["message"] == "Page view already closed"
        db.expire_all()
        page_view = db.query(PageView).one()
        assert page_view.exit_time == exit_time
        assert page_view.interactions == 5

    def test_beacon_body_token(self, client, db, sales_user, start_page, make_token):
        page_view_id = start_page(sales_user)["pageViewId"]
        body = json.dumps({"pageViewId": page_view_id, "token": make_token(sales_user)})
        resp = client.post("/page-tracking/end", content=body, headers=BEACON_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Page view ended"
        assert db.query(PageView).one().exit_time is not None

    def test_no_credential_is_unauthorized(self, client, sales_user, start_page):
        page_view_id = start_page(sales_user)["pageViewId"]
        resp = client.post("/page-tracking/end", json={"pageViewId": page_view_id})
        assert resp.status_code == 401

    def test_expired_credential_is_unauthorized(self, client, sales_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        resp = client.post(
            "/page-tracking/end",
            json={"pageViewId": page_view_id},
            headers=auth_header(sales_user, expires_delta=-5),
        )
        assert resp.status_code == 401

    def test_unparseable_body(self, client, sales_user, auth_header):
        resp = client.post(
            "/page-tracking/end",
            content="pageViewId=1",
            headers={**BEACON_HEADERS, **auth_header(sales_user)},
        )
        assert resp.status_code == 400

    def test_missing_page_view_id(self, client, sales_user, auth_header):
        resp = client.post("/page-tracking/end", json={}, headers=auth_header(sales_user))
        assert resp.status_code == 422

    def test_unknown_page_view(self, client, sales_user, auth_header):
        resp = client.post("/page-tracking/end", json={"pageViewId": 9999}, headers=auth_header(sales_user))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Page view not found"

    def test_page_view_of_another_user(self, client, sales_user, support_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        resp = client.post(
            "/page-tracking/end",
            json={"pageViewId": page_view_id},
            headers=auth_header(support_user),
        )
        assert resp.status_code == 403

    def test_scroll_depth_clamped(self, client, db, sales_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        client.post(
            "/page-tracking/end",
            json={"pageViewId": page_view_id, "scrollDepth": 180},
            headers=auth_header(sales_user),
        )
        assert db.query(PageView).one().scroll_depth == 100

    def test_future_exit_time_capped_at_now(self, client, db, sales_user, auth_header):
        with freeze_time("2026-04-01 06:00:00") as frozen:
            page_view_id = client.post(
                "/page-tracking/start",
                json={"sessionToken": "session_1_future", "pagePath": "/leads"},
                headers=auth_header(sales_user),
            ).json()["pageViewId"]
            frozen.tick(timedelta(seconds=10))
            client.post(
                "/page-tracking/end",
                json={"pageViewId": page_view_id, "exitTime": "2026-04-02T06:00:00+00:00", "duration": 86400},
                headers=auth_header(sales_user),
            )
        assert db.query(PageView).one().duration == 10


class TestUpdatePageView:
    def test_records_action(self, client, db, sales_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        resp = client.post(
            "/page-tracking/update",
            json={"pageViewId": page_view_id, "interactions": 4, "action": "logout_initiated"},
            headers=auth_header(sales_user),
        )
        assert resp.status_code == 200

        page_view = db.query(PageView).one()
        assert page_view.interactions == 4
        assert page_view.last_action == "logout_initiated"
        activity = db.query(ActivityLog).filter(ActivityLog.action == "page_action:logout_initiated").one()
        assert activity.entity_id == page_view_id
        assert activity.details["pagePath"] == "/leads"

    def test_interactions_never_decrease(self, client, db, sales_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        for count in (6, 2):
            client.post(
                "/page-tracking/update",
                json={"pageViewId": page_view_id, "interactions": count},
                headers=auth_header(sales_user),
            )
        db.expire_all()
        assert db.query(PageView).one().interactions == 6

    def test_other_users_page_view_not_found(self, client, sales_user, support_user, start_page, auth_header):
        page_view_id = start_page(sales_user)["pageViewId"]
        resp = client.post(
            "/page-tracking/update",
            json={"pageViewId": page_view_id, "interactions": 1},
            headers=auth_header(support_user),
        )
        assert resp.status_code == 404


class TestConcurrentSessionCreate:
    def test_loser_of_insert_race_reuses_winner(self, db, session_factory, sales_user, monkeypatch):
        token = "session_1_raced"
        real_lookup = Session_crud.get_session_by_token
        lookups = []

        def lookup_while_other_tab_inserts(session, session_token):
            lookups.append(session_token)
            if len(lookups) == 1:
                other = session_factory()
                other.add(UserSession(user_id=sales_user.id, session_token=session_token, total_pages=0))
                other.commit()
                other.close()
                return None
            return real_lookup(session, session_token)

        monkeypatch.setattr(Session_crud, "get_session_by_token", lookup_while_other_tab_inserts)

        session, created = Session_crud.get_or_create_session(db, sales_user.id, token)

        assert created is False
        assert len(lookups) == 2
        assert db.query(UserSession).count() == 1
        assert session.id == db.query(UserSession).one().id
