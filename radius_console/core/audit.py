"""Audit trail: recording, querying, statistics, retention and security reports."""

import json
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from radius_console.config import get_settings
from radius_console.core import audit_export
from radius_console.core.exceptions import NotFoundError, ValidationError
from radius_console.db.models import AppUser, AuditLog
from radius_console.utils.dates import ensure_utc, start_of_day, utc_now

logger = logging.getLogger(__name__)

# Entities
ENTITY_AUTHENTICATION = "Authentication"
ENTITY_USER = "User"
ENTITY_USER_ROLE = "UserRole"
ENTITY_RADIUS_USER = "RadiusUser"
ENTITY_RADIUS_GROUP = "RadiusGroup"
ENTITY_RADIUS_SESSION = "RadiusSession"
ENTITY_COA_REQUEST = "CoaRequest"
ENTITY_POLICY_TEMPLATE = "PolicyTemplate"
ENTITY_SETTING = "Setting"
ENTITY_AUDIT = "AuditLog"
ENTITY_SYSTEM = "System"

LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"

SECURITY_MARKERS = ("FAILED", "UNAUTHORIZED", "BLOCKED")

BY_DATE_GROUPS = ("hour", "day", "week", "month")

COMPLIANCE_CATEGORIES = (
    "authentication",
    "user_management",
    "radius_configuration",
    "data_export",
    "settings",
)

_RADIUS_ENTITIES = {
    ENTITY_RADIUS_USER, ENTITY_RADIUS_GROUP, ENTITY_RADIUS_SESSION, ENTITY_COA_REQUEST, ENTITY_POLICY_TEMPLATE,
}


def _jsonable(data):
    """Coerce ``data`` into something the JSON column accepts."""
    if data is None:
        return None
    return json.loads(json.dumps(data, default=str))


# strftime (SQLite) and DATE_FORMAT (MySQL) share these codes
_BUCKET_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
    "month": "%Y-%m",
}


def _parse_hour(label: str) -> datetime:
    return datetime.strptime(label, _BUCKET_FORMATS["hour"]).replace(tzinfo=timezone.utc)


def _iso_week_label(day_label: str) -> str:
    year, week, _ = datetime.strptime(day_label, "%Y-%m-%d").isocalendar()
    return f"{year}-W{week}"


def _compliance_category(entity: str, action: str) -> str | None:
    if "EXPORT" in action:
        return "data_export"
    if entity == ENTITY_AUTHENTICATION or action in (
        "USER_LOGOUT", "PASSWORD_CHANGED", "PASSWORD_RESET", "PASSWORD_RESET_REQUESTED",
    ):
        return "authentication"
    if entity in (ENTITY_USER, ENTITY_USER_ROLE):
        return "user_management"
    if entity in _RADIUS_ENTITIES:
        return "radius_configuration"
    if entity == ENTITY_SETTING:
        return "settings"
    return None


class AuditManager:
    """Writes and reads the ``audit_log`` table."""

    def __init__(self, db: Session):
        """
        Initialize audit manager.

        Args:
            db: Database session
        """
        self.db = db

    # ========================================================================
    # Writing
    # ========================================================================

    def log(
        self,
        action: str,
        entity: str,
        entity_id: str | None = None,
        actor_id: str | None = None,
        before: dict | None = None,
        after: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        """Append one audit record. The caller commits.

        Args:
            action: Action name, e.g. ``USER_CREATED``
            entity: Entity type, e.g. ``User``
            entity_id: Identifier of the affected entity
            actor_id: Console user performing the action (None for system)
            before: State before the change
            after: State after the change
            ip_address: Client IP
            user_agent: Client user agent

        Returns:
            The new audit record
        """
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=None if entity_id is None else str(entity_id),
            before_data=_jsonable(before),
            after_data=_jsonable(after),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        self.db.flush()
        logger.debug(f"📝 Audit {action} {entity}:{entity_id} by {actor_id or 'system'}")
        return entry

    def log_user_action(self, actor_id, action, entity, entity_id=None, before=None, after=None,
                        ip_address=None, user_agent=None) -> AuditLog:
        return self.log(action, entity, entity_id, actor_id, before, after, ip_address, user_agent)

    def log_system_action(self, action, entity, entity_id=None, before=None, after=None) -> AuditLog:
        return self.log(action, entity, entity_id, None, before, after, None, "System")

    def log_authentication_attempt(
        self,
        username: str,
        success: bool,
        ip_address: str | None = None,
        user_agent: str | None = None,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        after = {"username": username, "success": success}
        if reason:
            after["reason"] = reason
        return self.log(
            LOGIN_SUCCESS if success else LOGIN_FAILED,
            ENTITY_AUTHENTICATION,
            username,
            actor_id,
            None,
            after,
            ip_address,
            user_agent,
        )

    def log_password_change(self, actor_id, target_user_id, action="PASSWORD_CHANGED",
                            ip_address=None, user_agent=None) -> AuditLog:
        return self.log(action, ENTITY_USER, target_user_id, actor_id, None,
                        {"user_id": target_user_id}, ip_address, user_agent)

    def log_role_assignment(self, actor_id, target_user_id, role_name, assigned: bool,
                            ip_address=None, user_agent=None) -> AuditLog:
        data = {"user_id": target_user_id, "role": role_name}
        return self.log(
            "ROLE_ASSIGNED" if assigned else "ROLE_REMOVED",
            ENTITY_USER_ROLE,
            target_user_id,
            actor_id,
            None if assigned else data,
            data if assigned else None,
            ip_address,
            user_agent,
        )

    def log_radius_user_action(self, actor_id, action, username, before=None, after=None,
                               ip_address=None, user_agent=None) -> AuditLog:
        return self.log(action, ENTITY_RADIUS_USER, username, actor_id, before, after, ip_address, user_agent)

    def log_radius_group_action(self, actor_id, action, groupname, before=None, after=None,
                                ip_address=None, user_agent=None) -> AuditLog:
        return self.log(action, ENTITY_RADIUS_GROUP, groupname, actor_id, before, after, ip_address, user_agent)

    def log_session_action(self, actor_id, action, acct_session_id, username=None,
                           ip_address=None, user_agent=None) -> AuditLog:
        return self.log(action, ENTITY_RADIUS_SESSION, acct_session_id, actor_id, None,
                        {"username": username, "acct_session_id": acct_session_id}, ip_address, user_agent)

    def log_coa_request(self, actor_id, request_id, request_type, username, acct_session_id,
                        ip_address=None, user_agent=None) -> AuditLog:
        return self.log(
            "COA_REQUESTED",
            ENTITY_COA_REQUEST,
            request_id,
            actor_id,
            None,
            {"request_type": request_type, "username": username, "acct_session_id": acct_session_id},
            ip_address,
            user_agent,
        )

    def log_settings_change(self, actor_id, key, old_value, new_value,
                            ip_address=None, user_agent=None) -> AuditLog:
        return self.log("SETTINGS_CHANGED", ENTITY_SETTING, key, actor_id,
                        {"key": key, "value": old_value}, {"key": key, "value": new_value},
                        ip_address, user_agent)

    # ========================================================================
    # Querying
    # ========================================================================

    def _base_query(self):
        return select(AuditLog, AppUser.username).outerjoin(AppUser, AppUser.id == AuditLog.actor_id)

    @staticmethod
    def _entry(log: AuditLog, actor_username: str | None) -> dict:
        return {
            "id": log.id,
            "timestamp": ensure_utc(log.timestamp),
            "actor_id": log.actor_id,
            "actor_username": actor_username,
            "action": log.action,
            "entity": log.entity,
            "entity_id": log.entity_id,
            "before_data": log.before_data,
            "after_data": log.after_data,
            "ip_address": log.ip_address,
            "user_agent": log.user_agent,
        }

    def _run(self, query, page: int | None = None, page_size: int | None = None) -> tuple[list[dict], int]:
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0
        query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        if page is not None and page_size is not None:
            query = query.offset((page - 1) * page_size).limit(page_size)
        rows = self.db.execute(query).all()
        return [self._entry(log, username) for log, username in rows], total

    @staticmethod
    def _filter_range(query, start: datetime | None, end: datetime | None):
        if start:
            query = query.where(AuditLog.timestamp >= ensure_utc(start))
        if end:
            query = query.where(AuditLog.timestamp <= ensure_utc(end))
        return query

    def query(
        self,
        page: int = 1,
        page_size: int = 50,
        actor: str | None = None,
        entity: str | None = None,
        action: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        search: str | None = None,
    ) -> tuple[list[dict], int]:
        """Filtered, paginated audit entries, newest first.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            actor: Actor id or username
            entity: Exact entity name
            action: Exact action name
            start: Earliest timestamp (inclusive)
            end: Latest timestamp (inclusive)
            search: Substring of action, entity, entity id or actor username

        Returns:
            Tuple of (entries, total matching)
        """
        query = self._base_query()
        if actor:
            query = query.where(or_(AuditLog.actor_id == actor, AppUser.username == actor))
        if entity:
            query = query.where(AuditLog.entity == entity)
        if action:
            query = query.where(AuditLog.action == action)
        query = self._filter_range(query, start, end)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    AuditLog.action.ilike(pattern),
                    AuditLog.entity.ilike(pattern),
                    AuditLog.entity_id.ilike(pattern),
                    AppUser.username.ilike(pattern),
                )
            )
        return self._run(query, page, page_size)

    def get(self, log_id: int) -> dict:
        row = self.db.execute(self._base_query().where(AuditLog.id == log_id)).first()
        if row is None:
            raise NotFoundError(f"Audit log {log_id} not found")
        return self._entry(*row)

    def by_actor(self, actor_id: str, page: int = 1, page_size: int = 50) -> tuple[list[dict], int]:
        return self._run(self._base_query().where(AuditLog.actor_id == actor_id), page, page_size)

    def by_entity(
        self,
        entity: str,
        entity_id: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[dict], int]:
        query = self._base_query().where(AuditLog.entity == entity)
        if entity_id:
            query = query.where(AuditLog.entity_id == entity_id)
        return self._run(query, page, page_size)

    def by_date_range(
        self,
        start: datetime,
        end: datetime,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[dict], int]:
        """
        Raises:
            ValidationError: ``start`` is not before ``end``
        """
        if ensure_utc(start) >= ensure_utc(end):
            raise ValidationError("Start date must be before end date")
        return self._run(self._filter_range(self._base_query(), start, end), page, page_size)

    def search(self, term: str, page: int = 1, page_size: int = 50) -> tuple[list[dict], int]:
        """
        Raises:
            ValidationError: Empty search term
        """
        if not term or not term.strip():
            raise ValidationError("Search term is required")
        return self.query(page=page, page_size=page_size, search=term.strip())

    def recent(self, limit: int = 20) -> list[dict]:
        rows = self.db.execute(
            self._base_query().order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)
        ).all()
        return [self._entry(log, username) for log, username in rows]

    def export_rows(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        actor: str | None = None,
        entity: str | None = None,
        action: str | None = None,
    ) -> list[dict]:
        """Every entry matching the filters, newest first."""
        query = self._base_query()
        if actor:
            query = query.where(or_(AuditLog.actor_id == actor, AppUser.username == actor))
        if entity:
            query = query.where(AuditLog.entity == entity)
        if action:
            query = query.where(AuditLog.action == action)
        entries, _ = self._run(self._filter_range(query, start, end))
        return entries

    # ========================================================================
    # Statistics
    # ========================================================================

    def count(self, start: datetime | None = None, end: datetime | None = None) -> int:
        query = self._filter_range(select(func.count(AuditLog.id)), start, end)
        return self.db.execute(query).scalar() or 0

    def action_counts(self, start: datetime | None = None, end: datetime | None = None) -> dict[str, int]:
        """Entries per action, most frequent first."""
        query = select(AuditLog.action, func.count(AuditLog.id)).group_by(AuditLog.action)
        rows = self.db.execute(self._filter_range(query, start, end)).all()
        return {action: count for action, count in sorted(rows, key=lambda r: (-r[1], r[0]))}

    def entity_counts(self, start: datetime | None = None, end: datetime | None = None) -> dict[str, int]:
        """Entries per entity, most frequent first."""
        query = select(AuditLog.entity, func.count(AuditLog.id)).group_by(AuditLog.entity)
        rows = self.db.execute(self._filter_range(query, start, end)).all()
        return {entity: count for entity, count in sorted(rows, key=lambda r: (-r[1], r[0]))}

    def statistics(self, start: datetime | None = None, end: datetime | None = None) -> dict:
        """Totals for a period (all time when no range is given)."""
        unique_actors = self.db.execute(
            self._filter_range(
                select(func.count(func.distinct(AuditLog.actor_id))).where(AuditLog.actor_id.is_not(None)),
                start,
                end,
            )
        ).scalar() or 0
        failed_logins = self.db.execute(
            self._filter_range(
                select(func.count(AuditLog.id)).where(AuditLog.action == LOGIN_FAILED),
                start,
                end,
            )
        ).scalar() or 0

        return {
            "total_logs": self.count(start, end),
            "logs_today": self.count(start_of_day(utc_now()), None),
            "unique_actors": unique_actors,
            "failed_logins": failed_logins,
            "by_action": self.action_counts(start, end),
            "by_entity": self.entity_counts(start, end),
        }

    def _time_bucket(self, group_by: str):
        """SQL expression labelling ``timestamp`` by hour, day or month."""
        fmt = _BUCKET_FORMATS[group_by]
        if self.db.get_bind().dialect.name == "sqlite":
            return func.strftime(fmt, AuditLog.timestamp)
        return func.date_format(AuditLog.timestamp, fmt)

    def by_date(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        group_by: str = "day",
    ) -> list[dict]:
        """Entry counts bucketed by hour, day, ISO week or month.

        Raises:
            ValidationError: Unknown ``group_by``
        """
        if group_by not in BY_DATE_GROUPS:
            raise ValidationError(f"group_by must be one of {BY_DATE_GROUPS}")

        bucket = self._time_bucket("day" if group_by == "week" else group_by)
        rows = self.db.execute(
            self._filter_range(select(bucket, func.count(AuditLog.id)).group_by(bucket), start, end)
        ).all()

        if group_by == "week":
            weeks = Counter()
            for day, count in rows:
                weeks[_iso_week_label(day)] += count
            rows = weeks.items()
        return [{"date": label, "count": count} for label, count in sorted(rows)]

    def most_active_users(
        self,
        limit: int = 10,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        action_count = func.count(AuditLog.id).label("action_count")
        query = (
            select(AuditLog.actor_id, AppUser.username, action_count, func.max(AuditLog.timestamp))
            .join(AppUser, AppUser.id == AuditLog.actor_id)
            .group_by(AuditLog.actor_id, AppUser.username)
            .order_by(action_count.desc(), AppUser.username)
            .limit(limit)
        )
        rows = self.db.execute(self._filter_range(query, start, end)).all()
        return [
            {
                "actor_id": actor_id,
                "username": username,
                "action_count": count,
                "last_activity": ensure_utc(last),
            }
            for actor_id, username, count, last in rows
        ]

    # ========================================================================
    # Retention
    # ========================================================================

    def _retention_cutoff(self, older_than_days: int) -> datetime:
        minimum = get_settings().audit_min_retention_days
        if older_than_days < minimum:
            raise ValidationError(f"Audit logs must be kept for at least {minimum} days")
        return utc_now() - timedelta(days=older_than_days)

    def cleanup(self, older_than_days: int) -> int:
        """Delete entries older than ``older_than_days``.

        Raises:
            ValidationError: Below the configured minimum retention

        Returns:
            Number of entries deleted
        """
        cutoff = self._retention_cutoff(older_than_days)
        result = self.db.execute(delete(AuditLog).where(AuditLog.timestamp < cutoff))
        self.db.flush()
        logger.info(f"🧹 Deleted {result.rowcount} audit entries older than {cutoff.date()}")
        return result.rowcount

    def archive(self, older_than_days: int) -> tuple[int, str | None]:
        """Write old entries to a JSON file, then delete them.

        Raises:
            ValidationError: Below the configured minimum retention

        Returns:
            Tuple of (entries archived, archive file path or None if nothing was old enough)
        """
        cutoff = self._retention_cutoff(older_than_days)
        query = self._base_query().where(AuditLog.timestamp < cutoff)
        entries, total = self._run(query)
        if total == 0:
            return 0, None

        archive_dir = Path(get_settings().audit_archive_path)
        archive_dir.mkdir(parents=True, exist_ok=True)
        path = archive_dir / f"audit_archive_{utc_now().strftime('%Y%m%d_%H%M%S')}.json"
        path.write_text(audit_export.to_json(entries), encoding="utf-8")

        self.db.execute(delete(AuditLog).where(AuditLog.id.in_([e["id"] for e in entries])))
        self.db.flush()

        logger.info(f"📦 Archived {total} audit entries to {path}")
        return total, str(path)

    # ========================================================================
    # Reports
    # ========================================================================

    def summary_report(self, start: datetime, end: datetime) -> dict:
        return {
            "period": {"start": ensure_utc(start), "end": ensure_utc(end)},
            "generated_at": utc_now(),
            "statistics": self.statistics(start, end),
            "most_active_users": self.most_active_users(10, start, end),
            "security_alert_count": len(self.security_alerts(start, end, limit=1000)),
        }

    def detailed_report(self, start: datetime, end: datetime, limit: int = 1000) -> dict:
        entries, total = self._run(self._filter_range(self._base_query(), start, end), 1, limit)
        return {
            "period": {"start": ensure_utc(start), "end": ensure_utc(end)},
            "generated_at": utc_now(),
            "total": total,
            "truncated": total > len(entries),
            "entries": entries,
        }

    # ========================================================================
    # Security
    # ========================================================================

    def security_alerts(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Entries whose action signals a failure, block or unauthorized access."""
        query = self._base_query().where(
            or_(*[AuditLog.action.contains(marker) for marker in SECURITY_MARKERS])
        )
        entries, _ = self._run(self._filter_range(query, start, end), 1, limit)
        for entry in entries:
            entry["severity"] = "High" if "UNAUTHORIZED" in entry["action"] else "Medium"
        return entries

    def anomalies(self, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
        """Actors exceeding ``anomaly_actions_per_hour`` within a single hour."""
        threshold = get_settings().anomaly_actions_per_hour
        hour_bucket = self._time_bucket("hour")
        action_count = func.count(AuditLog.id)
        query = (
            select(AuditLog.actor_id, hour_bucket, action_count)
            .where(AuditLog.actor_id.is_not(None))
            .group_by(AuditLog.actor_id, hour_bucket)
            .having(action_count > threshold)
        )
        flagged = [
            ((actor_id, _parse_hour(label)), count)
            for actor_id, label, count in self.db.execute(self._filter_range(query, start, end)).all()
        ]
        if not flagged:
            return []

        names = dict(
            self.db.execute(
                select(AppUser.id, AppUser.username).where(AppUser.id.in_({k[0] for k, _ in flagged}))
            ).all()
        )
        flagged.sort(key=lambda item: (-item[1], item[0][1]))
        return [
            {
                "actor_id": actor_id,
                "username": names.get(actor_id),
                "hour": hour,
                "action_count": count,
                "threshold": threshold,
            }
            for (actor_id, hour), count in flagged
        ]

    def compliance_report(self, start: datetime, end: datetime) -> dict:
        """Action counts per compliance category plus failed-login analysis."""
        threshold = get_settings().failed_login_alert_threshold
        rows = self.db.execute(
            self._filter_range(
                select(AuditLog.entity, AuditLog.action, func.count(AuditLog.id))
                .group_by(AuditLog.entity, AuditLog.action),
                start,
                end,
            )
        ).all()

        categories = dict.fromkeys(COMPLIANCE_CATEGORIES, 0)
        for entity, action, count in rows:
            category = _compliance_category(entity, action)
            if category:
                categories[category] += count

        failed_count = func.count(AuditLog.id).label("failed_count")
        failed_rows = self.db.execute(
            self._filter_range(
                select(AuditLog.entity_id, failed_count)
                .where(AuditLog.action == LOGIN_FAILED)
                .group_by(AuditLog.entity_id)
                .order_by(failed_count.desc()),
                start,
                end,
            )
        ).all()

        return {
            "period": {"start": ensure_utc(start), "end": ensure_utc(end)},
            "generated_at": utc_now(),
            "categories": categories,
            "failed_logins": sum(count for _, count in failed_rows),
            "suspicious_actors": [
                {"username": username, "failed_attempts": count}
                for username, count in failed_rows
                if count > threshold
            ],
        }
