"""Unit tests for dashboard aggregations."""

from datetime import datetime, timedelta, timezone

import pytest

from radius_console.core.dashboard import DashboardManager
from radius_console.core.radius import RadiusManager
from radius_console.db.models import AuditLog, RadPostAuth

from tests.utils.helpers import HISTORY_DAY

DAY = HISTORY_DAY


def utc(**delta) -> datetime:
    return datetime.now(timezone.utc) + timedelta(**delta)


@pytest.fixture
def dashboard(db) -> DashboardManager:
    return DashboardManager(db)


@pytest.fixture
def recent_range() -> dict:
    """A window covering every sample row."""
    return {"start": utc(hours=-4), "end": utc(minutes=1)}


class TestDashboardOverview:
    def test_overview(self, dashboard, admin_user, sample_sessions, sample_auth_logs, recent_range):
        overview = dashboard.overview(**recent_range)

        assert overview["total_users"] == 1
        assert overview["active_sessions"] == 2
        assert overview["sessions_in_range"] == 3
        assert overview["total_authentications"] == 5
        assert overview["successful_authentications"] == 3
        assert overview["failed_authentications"] == 2

    def test_overview_defaults_to_today(self, dashboard):
        overview = dashboard.overview()
        assert overview["start"].hour == 0
        assert overview["start"].tzinfo is not None
        assert overview["end"] >= overview["start"]

    def test_user_stats(self, db, dashboard, admin_user, regular_user):
        RadiusManager(db).create_user("alice", "pw")
        stats = dashboard.user_stats()

        assert stats["total_users"] == 2
        assert stats["active_users"] == 2
        assert stats["totp_enabled_users"] == 0
        assert stats["radius_users"] == 1
        assert stats["new_users_this_month"] == 2


class TestDashboardSessions:
    """Test session aggregates and time buckets."""

    def test_session_stats(self, dashboard, sample_sessions, recent_range):
        stats = dashboard.session_stats(**recent_range)

        assert stats["total_sessions"] == 3
        assert stats["active_sessions"] == 2
        assert stats["unique_users"] == 2
        assert stats["total_input_octets"] == 5500
        assert stats["total_output_octets"] == 10700
        assert stats["total_bytes"] == 16200
        assert stats["average_session_duration"] == 3600.0

    def test_hourly_sessions(self, dashboard, history):
        buckets = dashboard.hourly_session_stats(DAY)
        assert len(buckets) == 24
        assert buckets[9] == {"hour": 9, "count": 2}
        assert sum(b["count"] for b in buckets) == 2

    def test_daily_sessions(self, dashboard, history):
        days = dashboard.daily_session_stats(DAY, DAY + timedelta(days=2))

        assert [d["date"] for d in days] == ["2026-03-10", "2026-03-11", "2026-03-12"]
        assert days[0] == {"date": "2026-03-10", "session_count": 2, "unique_users": 2, "total_session_time": 8100}
        assert days[1]["session_count"] == 1
        assert days[2]["session_count"] == 0

    def test_daily_defaults_to_a_week(self, dashboard):
        assert len(dashboard.daily_session_stats()) == 7


class TestDashboardAuthentication:
    def test_authentication_stats(self, dashboard, sample_auth_logs, recent_range):
        stats = dashboard.authentication_stats(**recent_range)

        assert stats["total_authentications"] == 5
        assert stats["success_rate"] == 60.0
        assert stats["by_result"] == {"Accept": 3, "Reject": 2, "Challenge": 0}

    def test_hourly_auth(self, dashboard, history):
        buckets = dashboard.hourly_auth_stats(DAY)
        assert buckets[9] == {"hour": 9, "total": 3, "successful": 2, "failed": 1}
        assert buckets[14]["total"] == 0

    def test_daily_auth(self, dashboard, history):
        days = dashboard.daily_auth_stats(DAY, DAY + timedelta(days=1, hours=23))
        assert days[0] == {"date": "2026-03-10", "total": 3, "successful": 2, "failed": 1, "success_rate": 66.67}
        assert days[1]["success_rate"] == 100.0

    def test_empty_success_rate(self, dashboard, recent_range):
        assert dashboard.authentication_stats(**recent_range)["success_rate"] == 0.0


class TestDashboardUsersAndGroups:
    def test_user_activity_and_top_users(self, dashboard, history):
        start, end = DAY, DAY + timedelta(days=2)

        activity = dashboard.user_activity(start, end)
        assert [(u["username"], u["session_count"]) for u in activity] == [("alice", 2), ("bob", 1)]
        assert activity[0]["total_bytes"] == 2300

        top = dashboard.top_active_users(limit=1, start=start, end=end)
        assert top[0]["username"] == "alice"
        assert top[0]["total_session_time"] == 6900

    def test_groups(self, db, dashboard):
        radius = RadiusManager(db)
        radius.create_user("alice", "pw", groups=["staff", "vpn"])
        radius.create_user("bob", "pw", groups=["staff"])
        radius.create_group("guests", reply_attributes=[{"attribute": "Session-Timeout", "value": "60"}])

        stats = dashboard.group_stats()
        assert stats == {"total_groups": 3, "total_memberships": 3, "average_users_per_group": 1.0}
        assert dashboard.group_distribution() == [
            {"groupname": "staff", "user_count": 2},
            {"groupname": "vpn", "user_count": 1},
        ]


class TestDashboardNetwork:
    def test_network_stats(self, dashboard, history):
        stats = dashboard.network_stats(DAY, DAY + timedelta(days=2))
        assert stats["total_sessions"] == 3
        assert stats["total_bytes"] == 3000
        assert stats["average_bytes_per_session"] == 1000.0

    def test_nas_usage(self, dashboard, history):
        usage = dashboard.nas_usage(DAY, DAY + timedelta(days=2))
        assert usage == [
            {"nas_ip": "10.0.0.1", "session_count": 2, "total_bytes": 1000, "unique_users": 2},
            {"nas_ip": "10.0.0.2", "session_count": 1, "total_bytes": 2000, "unique_users": 1},
        ]

    def test_bandwidth(self, dashboard, history):
        days = dashboard.bandwidth(DAY, DAY + timedelta(days=1, hours=23))
        assert days == [
            {"date": "2026-03-10", "input_octets": 400, "output_octets": 600, "total_bytes": 1000},
            {"date": "2026-03-11", "input_octets": 1000, "output_octets": 1000, "total_bytes": 2000},
        ]


class TestDashboardRealTime:
    def test_real_time(self, dashboard, sample_sessions, sample_auth_logs):
        snapshot = dashboard.real_time()
        assert snapshot["active_sessions"] == 2
        assert snapshot["authentications_last_minute"] <= 5

    def test_active_sessions_and_recent_auths(self, dashboard, sample_sessions, sample_auth_logs):
        assert [s.acctsessionid for s in dashboard.real_time_active_sessions()] == ["sess-002", "sess-001"]
        recent = dashboard.recent_authentications(limit=2)
        assert [a.username for a in recent] == ["mallory", "mallory"]

    def test_failed_auth_burst_alert(self, db, dashboard):
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        db.add_all([
            RadPostAuth(username="mallory", reply="Access-Reject", authdate=now - timedelta(seconds=i + 1))
            for i in range(11)
        ])
        db.commit()

        alerts = dashboard.system_alerts()
        assert len(alerts) == 1
        assert alerts[0]["type"] == "failed_authentications"
        assert alerts[0]["value"] == 11

    def test_audit_security_event_alerts(self, db, dashboard):
        for seconds in (1, 2, 3):
            db.add(AuditLog(action="LOGIN_FAILED", entity="Authentication", entity_id="mallory",
                            timestamp=utc(seconds=-seconds)))
        db.add(AuditLog(action="UNAUTHORIZED_ACCESS", entity="System", timestamp=utc(minutes=-5)))
        db.add(AuditLog(action="LOGIN_FAILED", entity="Authentication", timestamp=utc(hours=-2)))
        db.add(AuditLog(action="USER_CREATED", entity="User", timestamp=utc(seconds=-1)))
        db.commit()

        alerts = {a["message"]: a for a in dashboard.system_alerts()}

        assert set(alerts) == {
            "3 LOGIN_FAILED event(s) in the last hour",
            "1 UNAUTHORIZED_ACCESS event(s) in the last hour",
        }
        assert alerts["3 LOGIN_FAILED event(s) in the last hour"]["severity"] == "Medium"
        assert alerts["1 UNAUTHORIZED_ACCESS event(s) in the last hour"]["severity"] == "High"
        assert all(a["type"] == "security_events" for a in alerts.values())

    def test_no_alerts(self, dashboard, sample_auth_logs):
        assert dashboard.system_alerts() == []

    def test_recent_activities_merge(self, db, dashboard, admin_user, sample_auth_logs):
        db.add(AuditLog(action="USER_CREATED", entity="User", entity_id="u-1", actor_id=admin_user.id,
                        timestamp=utc(seconds=-1)))
        db.commit()

        activities = dashboard.recent_activities(limit=3)
        assert activities[0]["type"] == "audit"
        assert activities[0]["username"] == "admin"
        assert activities[0]["details"] == "User:u-1"
        assert [a["type"] for a in activities[1:]] == ["authentication", "authentication"]


class TestDashboardReportsAndHealth:
    def test_session_summary_report(self, dashboard, history):
        report = dashboard.session_summary_report(DAY, DAY + timedelta(days=2))
        assert report["summary"]["total_sessions"] == 3
        assert len(report["nas_usage"]) == 2
        assert report["top_users"][0]["username"] == "alice"

    def test_authentication_summary_report(self, dashboard, history):
        report = dashboard.authentication_summary_report(DAY, DAY + timedelta(days=1, hours=23))
        assert report["summary"]["total_authentications"] == 4
        assert len(report["daily"]) == 2

    def test_user_activity_report(self, dashboard, admin_user, history):
        report = dashboard.user_activity_report(DAY, DAY + timedelta(days=2))
        assert report["user_stats"]["total_users"] == 1
        assert len(report["activity"]) == 2

    def test_system_health(self, dashboard, admin_user, sample_sessions):
        health = dashboard.system_health()
        assert health["status"] == "healthy"
        assert health["database_connected"] is True
        assert health["app_users"] == 1
        assert health["active_sessions"] == 2
