"""Audit log query, statistics, retention, export and report endpoints."""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Query, Response, status

from radius_console.api.deps import AdminUser, DbSession, ManagerUser
from radius_console.core import audit_export
from radius_console.core.audit import BY_DATE_GROUPS, ENTITY_AUDIT, AuditManager
from radius_console.core.exceptions import NotFoundError, ValidationError
from radius_console.schemas.audit import (
    ActiveActor,
    Anomaly,
    ArchiveResponse,
    AuditLogResponse,
    AuditStatistics,
    CleanupResponse,
    ComplianceReport,
    DateCount,
    DetailedReport,
    RetentionRequest,
    SecurityAlertResponse,
    SummaryReport,
)
from radius_console.schemas.common import PaginatedResponse
from radius_console.utils.dates import ensure_utc, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audit", tags=["audit"])

REPORT_DEFAULT_DAYS = 30


def _report_range(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    """Missing report bounds default to the last 30 days."""
    end = ensure_utc(end) if end else utc_now()
    start = ensure_utc(start) if start else end - timedelta(days=REPORT_DEFAULT_DAYS)
    return start, end


def _page(entries: list[dict], total: int, page: int, page_size: int) -> PaginatedResponse[AuditLogResponse]:
    items = [AuditLogResponse(**e) for e in entries]
    return PaginatedResponse[AuditLogResponse].build(items, total, page, page_size)


# ============================================================================
# Queries
# ============================================================================


@router.get("/logs", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    actor: str | None = Query(None, description="Actor id or username"),
    entity: str | None = Query(None),
    action: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    search: str | None = Query(None),
) -> PaginatedResponse[AuditLogResponse]:
    """Filtered audit log, newest first.

    Args:
        admin: Authenticated Admin or Manager
        db: Database session
        page: Page number
        page_size: Items per page
        actor: Actor id or username
        entity: Entity name
        action: Action name
        start_date: Earliest timestamp
        end_date: Latest timestamp
        search: Free-text filter

    Returns:
        Paginated audit entries
    """
    entries, total = AuditManager(db).query(
        page, page_size, actor, entity, action, start_date, end_date, search
    )
    return _page(entries, total, page, page_size)


@router.get("/logs/actor/{actor_id}", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs_by_actor(
    actor_id: str,
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> PaginatedResponse[AuditLogResponse]:
    entries, total = AuditManager(db).by_actor(actor_id, page, page_size)
    return _page(entries, total, page, page_size)


@router.get("/logs/entity/{entity}", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs_by_entity(
    entity: str,
    admin: ManagerUser,
    db: DbSession,
    entity_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> PaginatedResponse[AuditLogResponse]:
    entries, total = AuditManager(db).by_entity(entity, entity_id, page, page_size)
    return _page(entries, total, page, page_size)


@router.get("/logs/date-range", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs_by_date_range(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> PaginatedResponse[AuditLogResponse]:
    """Entries between two timestamps.

    Raises:
        HTTPException: 400 if start is not before end
    """
    try:
        entries, total = AuditManager(db).by_date_range(start_date, end_date, page, page_size)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return _page(entries, total, page, page_size)


@router.get("/logs/{log_id}", response_model=AuditLogResponse)
async def get_audit_log(log_id: int, admin: ManagerUser, db: DbSession) -> AuditLogResponse:
    try:
        return AuditLogResponse(**AuditManager(db).get(log_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.get("/search", response_model=PaginatedResponse[AuditLogResponse])
async def search_audit_logs(
    admin: ManagerUser,
    db: DbSession,
    q: str = Query("", description="Matches action, entity, entity id or actor username"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
) -> PaginatedResponse[AuditLogResponse]:
    """Free-text search.

    Raises:
        HTTPException: 400 on an empty search term
    """
    try:
        entries, total = AuditManager(db).search(q, page, page_size)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return _page(entries, total, page, page_size)


# ============================================================================
# Statistics
# ============================================================================


@router.get("/statistics", response_model=AuditStatistics)
async def get_audit_statistics(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> AuditStatistics:
    return AuditStatistics(**AuditManager(db).statistics(start_date, end_date))


@router.get("/statistics/by-action", response_model=dict[str, int])
async def get_audit_counts_by_action(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> dict[str, int]:
    return AuditManager(db).action_counts(start_date, end_date)


@router.get("/statistics/by-entity", response_model=dict[str, int])
async def get_audit_counts_by_entity(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> dict[str, int]:
    return AuditManager(db).entity_counts(start_date, end_date)


@router.get("/statistics/by-date", response_model=list[DateCount])
async def get_audit_counts_by_date(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    group_by: str = Query("day", description=f"One of {', '.join(BY_DATE_GROUPS)}"),
) -> list[DateCount]:
    """Entry counts per hour, day, week or month.

    Raises:
        HTTPException: 400 on an unknown ``group_by``
    """
    try:
        buckets = AuditManager(db).by_date(start_date, end_date, group_by)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return [DateCount(**b) for b in buckets]


@router.get("/statistics/most-active-users", response_model=list[ActiveActor])
async def get_most_active_users(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(10, ge=1, le=100),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> list[ActiveActor]:
    return [ActiveActor(**a) for a in AuditManager(db).most_active_users(limit, start_date, end_date)]


# ============================================================================
# Retention
# ============================================================================


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_audit_logs(data: RetentionRequest, admin: AdminUser, db: DbSession) -> CleanupResponse:
    """Delete entries older than ``older_than_days`` (administrators only).

    Raises:
        HTTPException: 400 below the minimum retention period
    """
    audit = AuditManager(db)
    try:
        deleted = audit.cleanup(data.older_than_days)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    audit.log(
        "AUDIT_CLEANUP",
        ENTITY_AUDIT,
        None,
        actor_id=admin["sub"],
        after={"deleted": deleted, "older_than_days": data.older_than_days},
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()

    logger.info(f"🧹 {admin['username']} removed {deleted} audit entries")
    return CleanupResponse(deleted=deleted, older_than_days=data.older_than_days)


@router.post("/archive", response_model=ArchiveResponse)
async def archive_audit_logs(data: RetentionRequest, admin: AdminUser, db: DbSession) -> ArchiveResponse:
    """Move entries older than ``older_than_days`` to a JSON archive file.

    Raises:
        HTTPException: 400 below the minimum retention period
    """
    audit = AuditManager(db)
    try:
        archived, path = audit.archive(data.older_than_days)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    audit.log(
        "AUDIT_ARCHIVED",
        ENTITY_AUDIT,
        None,
        actor_id=admin["sub"],
        after={"archived": archived, "older_than_days": data.older_than_days, "archive_path": path},
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()

    return ArchiveResponse(archived=archived, older_than_days=data.older_than_days, archive_path=path)


# ============================================================================
# Export
# ============================================================================


@router.get("/export/{fmt}")
async def export_audit_logs(
    fmt: str,
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    actor: str | None = Query(None),
    entity: str | None = Query(None),
    action: str | None = Query(None),
) -> Response:
    """Download matching entries as CSV, JSON or XML.

    Raises:
        HTTPException: 404 for an unsupported format
    """
    if fmt not in audit_export.EXPORT_FORMATS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unsupported export format: {fmt}")

    audit = AuditManager(db)
    entries = audit.export_rows(start_date, end_date, actor, entity, action)
    content = audit_export.render(entries, fmt)

    audit.log(
        "AUDIT_EXPORTED",
        ENTITY_AUDIT,
        None,
        actor_id=admin["sub"],
        after={"format": fmt, "count": len(entries)},
        ip_address=admin["ip"],
        user_agent=admin["user_agent"],
    )
    db.commit()

    logger.info(f"📦 {admin['username']} exported {len(entries)} audit entries as {fmt}")
    return Response(
        content=content,
        media_type=audit_export.EXPORT_FORMATS[fmt],
        headers={"Content-Disposition": f'attachment; filename="{audit_export.export_filename(fmt)}"'},
    )


# ============================================================================
# Reports and security
# ============================================================================


@router.get("/reports/summary", response_model=SummaryReport)
async def get_summary_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> SummaryReport:
    start, end = _report_range(start_date, end_date)
    return SummaryReport(**AuditManager(db).summary_report(start, end))


@router.get("/reports/detailed", response_model=DetailedReport)
async def get_detailed_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(1000, ge=1, le=10000),
) -> DetailedReport:
    start, end = _report_range(start_date, end_date)
    return DetailedReport(**AuditManager(db).detailed_report(start, end, limit))


@router.get("/reports/compliance", response_model=ComplianceReport)
async def get_compliance_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> ComplianceReport:
    """Activity per compliance category and repeated failed logins."""
    start, end = _report_range(start_date, end_date)
    return ComplianceReport(**AuditManager(db).compliance_report(start, end))


@router.get("/security/alerts", response_model=list[SecurityAlertResponse])
async def get_security_alerts(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
) -> list[SecurityAlertResponse]:
    alerts = AuditManager(db).security_alerts(start_date, end_date, limit)
    return [SecurityAlertResponse(**a) for a in alerts]


@router.get("/security/anomalies", response_model=list[Anomaly])
async def get_security_anomalies(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> list[Anomaly]:
    """Actors with an unusually high number of actions within one hour."""
    start, end = _report_range(start_date, end_date)
    return [Anomaly(**a) for a in AuditManager(db).anomalies(start, end)]
