"""Dashboard aggregations over accounting, post-auth and audit data.

Everything is computed in SQL (grouped counts and sums) or over result sets
bounded by a limit; nothing loads whole tables into memory.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import extract, func, select, text
from sqlalchemy.orm import Session

from radius_console.core.audit import AuditManager
from radius_console.core.radius import RadiusManager
from radius_console.core.users import UserManager
from radius_console.db.models import AppUser, RadAcct, RadPostAuth, RadUserGroup
from radius_console.utils.dates import (
    day_bounds,
    default_range,
    ensure_utc,
    start_of_day,
    to_naive_utc,
    utc_now,
)

logger = logging.getLogger(__name__)

ACCESS_ACCEPT = "Access-Accept"
ACCESS_REJECT = "Access-Reject"

FAILED_AUTH_BURST_THRESHOLD = 10  # per minute
ACTIVE_SESSION_THRESHOLD = 1000
SECURITY_EVENT_WINDOW = timedelta(hours=1)


def _day_label(value) -> str:
    """Normalize ``func.date()`` output (string on SQLite, date elsewhere)."""
    return str(value)[:10]


def _days(start: datetime, end: datetime) -> list[str]:
    day = start_of_day(start)
    labels = []
    while day <= end:
        labels.append(day.strftime("%Y-%m-%d"))
        day += timedelta(days=1)
    return labels


def _success_rate(successful: int, total: int) -> float:
    return round(successful * 100.0 / total, 2) if total else 0.0


class DashboardManager:
    """Read-only statistics for the dashboard endpoints."""

    def __init__(self, db: Session):
        """
        Initialize dashboard manager.

        Args:
            db: Database session
        """
        self.db = db
        self.users = UserManager(db)
        self.radius = RadiusManager(db)
        self.audit = AuditManager(db)

    # ------------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------------

    @staticmethod
    def _sessions_between(query, start: datetime, end: datetime):
        return query.where(
            RadAcct.acctstarttime >= to_naive_utc(start),
            RadAcct.acctstarttime <= to_naive_utc(end),
        )

    @staticmethod
    def _auths_between(query, start: datetime, end: datetime):
        return query.where(
            RadPostAuth.authdate >= to_naive_utc(start),
            RadPostAuth.authdate <= to_naive_utc(end),
        )

    def _auth_counts(self, start: datetime, end: datetime) -> tuple[int, int, int]:
        """(total, successful, failed) authentications in range."""
        rows = self.db.execute(
            self._auths_between(
                select(RadPostAuth.reply, func.count(RadPostAuth.id)).group_by(RadPostAuth.reply),
                start,
                end,
            )
        ).all()
        counts = dict(rows)
        return sum(counts.values()), counts.get(ACCESS_ACCEPT, 0), counts.get(ACCESS_REJECT, 0)

    def _daily_range(self, start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
        end = ensure_utc(end) if end else utc_now()
        start = ensure_utc(start) if start else start_of_day(end) - timedelta(days=6)
        return start, end

    # ========================================================================
    # Overview
    # ========================================================================

    def overview(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        """Headline numbers; the range defaults to today (UTC)."""
        start, end = default_range(start, end)
        sessions_in_range = self.db.execute(
            self._sessions_between(select(func.count(RadAcct.radacctid)), start, end)
        ).scalar() or 0
        total_auths, successful, failed = self._auth_counts(start, end)

        return {
            "start": start,
            "end": end,
            "total_users": self.users.count(),
            "radius_users": self.radius.count_users(),
            "active_sessions": self.radius.count_active_sessions(),
            "sessions_in_range": sessions_in_range,
            "total_authentications": total_auths,
            "successful_authentications": successful,
            "failed_authentications": failed,
        }

    # ========================================================================
    # Users
    # ========================================================================

    def user_stats(self) -> dict:
        now = utc_now()
        today = start_of_day(now)
        totp_enabled = self.db.execute(
            select(func.count(AppUser.id)).where(AppUser.is_totp_enabled.is_(True))
        ).scalar() or 0

        return {
            "total_users": self.users.count(),
            "active_users": self.users.count_active(),
            "totp_enabled_users": totp_enabled,
            "radius_users": self.radius.count_users(),
            "new_users_today": self.users.count_created_since(today),
            "new_users_this_week": self.users.count_created_since(today - timedelta(days=today.weekday())),
            "new_users_this_month": self.users.count_created_since(today.replace(day=1)),
        }

    def _usage_by_user(self, start: datetime, end: datetime, limit: int, order: str) -> list[dict]:
        session_count = func.count(RadAcct.radacctid).label("session_count")
        session_time = func.coalesce(func.sum(RadAcct.acctsessiontime), 0).label("session_time")
        input_octets = func.coalesce(func.sum(RadAcct.acctinputoctets), 0)
        output_octets = func.coalesce(func.sum(RadAcct.acctoutputoctets), 0)

        query = self._sessions_between(
            select(
                RadAcct.username,
                session_count,
                session_time,
                input_octets,
                output_octets,
                func.max(RadAcct.acctstarttime),
            ).group_by(RadAcct.username),
            start,
            end,
        )
        if order == "time":
            query = query.order_by(session_time.desc(), RadAcct.username)
        else:
            query = query.order_by(session_count.desc(), RadAcct.username)

        return [
            {
                "username": username,
                "session_count": count,
                "total_session_time": int(seconds),
                "total_input_octets": int(inp),
                "total_output_octets": int(out),
                "total_bytes": int(inp) + int(out),
                "last_session": last,
            }
            for username, count, seconds, inp, out, last in self.db.execute(query.limit(limit)).all()
        ]

    def user_activity(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Per RADIUS user session totals in range."""
        start, end = default_range(start, end)
        return self._usage_by_user(start, end, limit, order="sessions")

    def top_active_users(
        self,
        limit: int = 10,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        """Users with the most connected time in range."""
        start, end = default_range(start, end)
        return self._usage_by_user(start, end, limit, order="time")

    # ========================================================================
    # Sessions
    # ========================================================================

    def session_stats(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        total, avg_time, inp, out, unique_users = self.db.execute(
            self._sessions_between(
                select(
                    func.count(RadAcct.radacctid),
                    func.avg(RadAcct.acctsessiontime),
                    func.coalesce(func.sum(RadAcct.acctinputoctets), 0),
                    func.coalesce(func.sum(RadAcct.acctoutputoctets), 0),
                    func.count(func.distinct(RadAcct.username)),
                ),
                start,
                end,
            )
        ).one()

        return {
            "start": start,
            "end": end,
            "total_sessions": total or 0,
            "active_sessions": self.radius.count_active_sessions(),
            "average_session_duration": round(float(avg_time or 0), 2),
            "total_input_octets": int(inp),
            "total_output_octets": int(out),
            "total_bytes": int(inp) + int(out),
            "unique_users": unique_users or 0,
        }

    def hourly_session_stats(self, date: datetime | None = None) -> list[dict]:
        """Sessions started in each hour of a UTC day (24 buckets)."""
        start, end = day_bounds(date)
        hour = extract("hour", RadAcct.acctstarttime)
        rows = self.db.execute(
            select(hour, func.count(RadAcct.radacctid))
            .where(
                RadAcct.acctstarttime >= to_naive_utc(start),
                RadAcct.acctstarttime < to_naive_utc(end),
            )
            .group_by(hour)
        ).all()
        counts = {int(h): c for h, c in rows}
        return [{"hour": h, "count": counts.get(h, 0)} for h in range(24)]

    def daily_session_stats(self, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
        """Sessions started per day; defaults to the last 7 days."""
        start, end = self._daily_range(start, end)
        day = func.date(RadAcct.acctstarttime)
        rows = self.db.execute(
            self._sessions_between(
                select(
                    day,
                    func.count(RadAcct.radacctid),
                    func.count(func.distinct(RadAcct.username)),
                    func.coalesce(func.sum(RadAcct.acctsessiontime), 0),
                ).group_by(day),
                start,
                end,
            )
        ).all()
        by_day = {_day_label(d): (count, users, int(seconds)) for d, count, users, seconds in rows}
        return [
            {
                "date": label,
                "session_count": by_day.get(label, (0, 0, 0))[0],
                "unique_users": by_day.get(label, (0, 0, 0))[1],
                "total_session_time": by_day.get(label, (0, 0, 0))[2],
            }
            for label in _days(start, end)
        ]

    # ========================================================================
    # Authentication
    # ========================================================================

    def authentication_stats(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        total, successful, failed = self._auth_counts(start, end)
        return {
            "start": start,
            "end": end,
            "total_authentications": total,
            "successful_authentications": successful,
            "failed_authentications": failed,
            "success_rate": _success_rate(successful, total),
            "by_result": self.radius.get_auth_stats_by_result(start, end),
        }

    def hourly_auth_stats(self, date: datetime | None = None) -> list[dict]:
        """Accepts and rejects in each hour of a UTC day (24 buckets)."""
        start, end = day_bounds(date)
        hour = extract("hour", RadPostAuth.authdate)
        rows = self.db.execute(
            select(hour, RadPostAuth.reply, func.count(RadPostAuth.id))
            .where(
                RadPostAuth.authdate >= to_naive_utc(start),
                RadPostAuth.authdate < to_naive_utc(end),
            )
            .group_by(hour, RadPostAuth.reply)
        ).all()

        buckets = [{"hour": h, "total": 0, "successful": 0, "failed": 0} for h in range(24)]
        for h, reply, count in rows:
            bucket = buckets[int(h)]
            bucket["total"] += count
            if reply == ACCESS_ACCEPT:
                bucket["successful"] += count
            elif reply == ACCESS_REJECT:
                bucket["failed"] += count
        return buckets

    def daily_auth_stats(self, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
        """Accepts and rejects per day; defaults to the last 7 days."""
        start, end = self._daily_range(start, end)
        day = func.date(RadPostAuth.authdate)
        rows = self.db.execute(
            self._auths_between(
                select(day, RadPostAuth.reply, func.count(RadPostAuth.id)).group_by(day, RadPostAuth.reply),
                start,
                end,
            )
        ).all()

        buckets = {
            label: {"date": label, "total": 0, "successful": 0, "failed": 0, "success_rate": 0.0}
            for label in _days(start, end)
        }
        for d, reply, count in rows:
            bucket = buckets.get(_day_label(d))
            if bucket is None:
                continue
            bucket["total"] += count
            if reply == ACCESS_ACCEPT:
                bucket["successful"] += count
            elif reply == ACCESS_REJECT:
                bucket["failed"] += count
        for bucket in buckets.values():
            bucket["success_rate"] = _success_rate(bucket["successful"], bucket["total"])
        return list(buckets.values())

    # ========================================================================
    # Groups
    # ========================================================================

    def group_stats(self) -> dict:
        total_groups = self.radius.count_groups()
        memberships = self.db.execute(select(func.count(RadUserGroup.id))).scalar() or 0
        return {
            "total_groups": total_groups,
            "total_memberships": memberships,
            "average_users_per_group": round(memberships / total_groups, 2) if total_groups else 0.0,
        }

    def group_distribution(self) -> list[dict]:
        user_count = func.count(func.distinct(RadUserGroup.username)).label("user_count")
        rows = self.db.execute(
            select(RadUserGroup.groupname, user_count)
            .group_by(RadUserGroup.groupname)
            .order_by(user_count.desc(), RadUserGroup.groupname)
        ).all()
        return [{"groupname": name, "user_count": count} for name, count in rows]

    # ========================================================================
    # Network
    # ========================================================================

    def network_stats(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        sessions, inp, out = self.db.execute(
            self._sessions_between(
                select(
                    func.count(RadAcct.radacctid),
                    func.coalesce(func.sum(RadAcct.acctinputoctets), 0),
                    func.coalesce(func.sum(RadAcct.acctoutputoctets), 0),
                ),
                start,
                end,
            )
        ).one()
        total_bytes = int(inp) + int(out)
        return {
            "start": start,
            "end": end,
            "total_sessions": sessions or 0,
            "total_input_octets": int(inp),
            "total_output_octets": int(out),
            "total_bytes": total_bytes,
            "average_bytes_per_session": round(total_bytes / sessions, 2) if sessions else 0.0,
        }

    def nas_usage(self, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
        start, end = default_range(start, end)
        session_count = func.count(RadAcct.radacctid).label("session_count")
        rows = self.db.execute(
            self._sessions_between(
                select(
                    RadAcct.nasipaddress,
                    session_count,
                    func.coalesce(func.sum(RadAcct.acctinputoctets), 0),
                    func.coalesce(func.sum(RadAcct.acctoutputoctets), 0),
                    func.count(func.distinct(RadAcct.username)),
                )
                .group_by(RadAcct.nasipaddress)
                .order_by(session_count.desc()),
                start,
                end,
            )
        ).all()
        return [
            {
                "nas_ip": nas,
                "session_count": count,
                "total_bytes": int(inp) + int(out),
                "unique_users": users,
            }
            for nas, count, inp, out, users in rows
        ]

    def bandwidth(self, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
        """Input and output octets per day; defaults to the last 7 days."""
        start, end = self._daily_range(start, end)
        day = func.date(RadAcct.acctstarttime)
        rows = self.db.execute(
            self._sessions_between(
                select(
                    day,
                    func.coalesce(func.sum(RadAcct.acctinputoctets), 0),
                    func.coalesce(func.sum(RadAcct.acctoutputoctets), 0),
                ).group_by(day),
                start,
                end,
            )
        ).all()
        by_day = {_day_label(d): (int(inp), int(out)) for d, inp, out in rows}
        return [
            {
                "date": label,
                "input_octets": by_day.get(label, (0, 0))[0],
                "output_octets": by_day.get(label, (0, 0))[1],
                "total_bytes": sum(by_day.get(label, (0, 0))),
            }
            for label in _days(start, end)
        ]

    # ========================================================================
    # Real time
    # ========================================================================

    def real_time(self) -> dict:
        now = utc_now()
        minute_ago = now - timedelta(minutes=1)
        total, successful, failed = self._auth_counts(minute_ago, now)
        new_sessions = self.db.execute(
            self._sessions_between(select(func.count(RadAcct.radacctid)), minute_ago, now)
        ).scalar() or 0
        return {
            "timestamp": now,
            "active_sessions": self.radius.count_active_sessions(),
            "authentications_last_minute": total,
            "successful_authentications_last_minute": successful,
            "failed_authentications_last_minute": failed,
            "new_sessions_last_minute": new_sessions,
        }

    def real_time_active_sessions(self, limit: int = 50) -> list[RadAcct]:
        sessions, _ = self.radius.get_active_sessions(page=1, page_size=limit)
        return sessions

    def recent_authentications(self, limit: int = 50) -> list[RadPostAuth]:
        return list(
            self.db.execute(
                select(RadPostAuth).order_by(RadPostAuth.authdate.desc(), RadPostAuth.id.desc()).limit(limit)
            ).scalars().all()
        )

    def system_alerts(self, limit: int = 20) -> list[dict]:
        """Alerts for failed-auth bursts, unusually many active sessions and
        audit security events (failed, blocked or unauthorized actions) in the
        last hour, one alert per action.
        """
        now = utc_now()
        alerts = []

        _, _, failed = self._auth_counts(now - timedelta(minutes=1), now)
        if failed > FAILED_AUTH_BURST_THRESHOLD:
            alerts.append({
                "type": "failed_authentications",
                "severity": "High",
                "message": f"{failed} failed authentications in the last minute",
                "value": failed,
                "threshold": FAILED_AUTH_BURST_THRESHOLD,
                "timestamp": now,
            })

        active = self.radius.count_active_sessions()
        if active > ACTIVE_SESSION_THRESHOLD:
            alerts.append({
                "type": "active_sessions",
                "severity": "Medium",
                "message": f"{active} active sessions",
                "value": active,
                "threshold": ACTIVE_SESSION_THRESHOLD,
                "timestamp": now,
            })

        events: dict[str, list[dict]] = {}
        for entry in self.audit.security_alerts(start=now - SECURITY_EVENT_WINDOW, limit=limit):
            events.setdefault(entry["action"], []).append(entry)
        for action, entries in events.items():
            alerts.append({
                "type": "security_events",
                "severity": entries[0]["severity"],
                "message": f"{len(entries)} {action} event(s) in the last hour",
                "value": len(entries),
                "threshold": 0,
                "timestamp": entries[0]["timestamp"],
            })

        if alerts:
            logger.warning(f"⚠️  {len(alerts)} system alert(s) raised")
        return alerts[:limit]

    # ========================================================================
    # Activity and audit
    # ========================================================================

    def recent_activities(self, limit: int = 20) -> list[dict]:
        """Authentications and audit entries merged, newest first."""
        activities = [
            {
                "type": "authentication",
                "timestamp": ensure_utc(auth.authdate),
                "username": auth.username,
                "action": auth.reply,
                "details": None,
            }
            for auth in self.recent_authentications(limit)
        ]
        activities += [
            {
                "type": "audit",
                "timestamp": entry["timestamp"],
                "username": entry["actor_username"],
                "action": entry["action"],
                "details": f"{entry['entity']}:{entry['entity_id']}" if entry["entity_id"] else entry["entity"],
            }
            for entry in self.audit.recent(limit)
        ]
        activities.sort(key=lambda a: a["timestamp"], reverse=True)
        return activities[:limit]

    def audit_stats(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        return self.audit.statistics(start, end)

    def top_audit_actors(
        self,
        limit: int = 10,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        return self.audit.most_active_users(limit, start, end)

    # ========================================================================
    # Reports
    # ========================================================================

    def session_summary_report(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        return {
            "start": start,
            "end": end,
            "generated_at": utc_now(),
            "summary": self.session_stats(start, end),
            "nas_usage": self.nas_usage(start, end),
            "top_users": self.top_active_users(10, start, end),
        }

    def authentication_summary_report(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        return {
            "start": start,
            "end": end,
            "generated_at": utc_now(),
            "summary": self.authentication_stats(start, end),
            "daily": self.daily_auth_stats(start, end),
        }

    def user_activity_report(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        start, end = default_range(start, end)
        return {
            "start": start,
            "end": end,
            "generated_at": utc_now(),
            "user_stats": self.user_stats(),
            "activity": self.user_activity(start, end),
        }

    # ========================================================================
    # Health
    # ========================================================================

    def system_health(self) -> dict:
        """Database reachability plus row counts and recent failures."""
        try:
            self.db.execute(text("SELECT 1"))
            connected = True
        except Exception as e:
            logger.error(f"❌ Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "timestamp": utc_now(),
                "database_connected": False,
            }

        now = utc_now()
        _, _, failed_last_hour = self._auth_counts(now - timedelta(hours=1), now)
        return {
            "status": "healthy",
            "timestamp": now,
            "database_connected": connected,
            "app_users": self.users.count(),
            "radius_users": self.radius.count_users(),
            "active_sessions": self.radius.count_active_sessions(),
            "audit_logs": self.audit.count(),
            "failed_authentications_last_hour": failed_last_hour,
        }
