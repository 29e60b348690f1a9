"""Dashboard statistics endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Query

from radius_console.api.deps import DbSession, ManagerUser
from radius_console.core.dashboard import DashboardManager
from radius_console.schemas.audit import ActiveActor, AuditStatistics
from radius_console.schemas.dashboard import (
    ActivityEntry,
    AuthenticationSummaryReport,
    AuthStatsResponse,
    BandwidthPoint,
    DailyAuthStats,
    DailySessionStats,
    GroupDistribution,
    GroupStatsResponse,
    HourlyAuthStats,
    HourlySessionCount,
    NasUsage,
    NetworkStatsResponse,
    OverviewResponse,
    RealTimeResponse,
    SessionStatsResponse,
    SessionSummaryReport,
    SystemAlert,
    SystemHealthResponse,
    UserActivityReport,
    UserStatsResponse,
    UserUsage,
)
from radius_console.schemas.radius import AuthLogResponse, SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

StartDate = Query(None, description="Range start (defaults per endpoint)")
EndDate = Query(None, description="Range end (defaults to now)")


# ============================================================================
# Overview
# ============================================================================


@router.get("/overview", response_model=OverviewResponse)
async def get_overview(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> OverviewResponse:
    """Headline numbers; the range defaults to today (UTC).

    Args:
        admin: Authenticated Admin or Manager
        db: Database session
        start_date: Range start
        end_date: Range end

    Returns:
        Overview counts
    """
    logger.info(f"📊 Dashboard overview requested by {admin['username']}")
    return OverviewResponse(**DashboardManager(db).overview(start_date, end_date))


@router.get("/system-health", response_model=SystemHealthResponse)
async def get_system_health(admin: ManagerUser, db: DbSession) -> SystemHealthResponse:
    return SystemHealthResponse(**DashboardManager(db).system_health())


# ============================================================================
# Sessions
# ============================================================================


@router.get("/sessions", response_model=SessionStatsResponse)
async def get_session_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> SessionStatsResponse:
    return SessionStatsResponse(**DashboardManager(db).session_stats(start_date, end_date))


@router.get("/sessions/hourly", response_model=list[HourlySessionCount])
async def get_hourly_session_stats(
    admin: ManagerUser,
    db: DbSession,
    date: datetime | None = Query(None, description="Day to report (defaults to today)"),
) -> list[HourlySessionCount]:
    """Sessions started per hour; all 24 hours are present."""
    return [HourlySessionCount(**h) for h in DashboardManager(db).hourly_session_stats(date)]


@router.get("/sessions/daily", response_model=list[DailySessionStats])
async def get_daily_session_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None, description="Defaults to 7 days ago"),
    end_date: datetime | None = EndDate,
) -> list[DailySessionStats]:
    return [DailySessionStats(**d) for d in DashboardManager(db).daily_session_stats(start_date, end_date)]


# ============================================================================
# Authentication
# ============================================================================


@router.get("/authentication", response_model=AuthStatsResponse)
async def get_auth_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> AuthStatsResponse:
    return AuthStatsResponse(**DashboardManager(db).authentication_stats(start_date, end_date))


@router.get("/authentication/hourly", response_model=list[HourlyAuthStats])
async def get_hourly_auth_stats(
    admin: ManagerUser,
    db: DbSession,
    date: datetime | None = Query(None, description="Day to report (defaults to today)"),
) -> list[HourlyAuthStats]:
    return [HourlyAuthStats(**h) for h in DashboardManager(db).hourly_auth_stats(date)]


@router.get("/authentication/daily", response_model=list[DailyAuthStats])
async def get_daily_auth_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None, description="Defaults to 7 days ago"),
    end_date: datetime | None = EndDate,
) -> list[DailyAuthStats]:
    return [DailyAuthStats(**d) for d in DashboardManager(db).daily_auth_stats(start_date, end_date)]


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=UserStatsResponse)
async def get_user_stats(admin: ManagerUser, db: DbSession) -> UserStatsResponse:
    return UserStatsResponse(**DashboardManager(db).user_stats())


@router.get("/users/activity", response_model=list[UserUsage])
async def get_user_activity(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
    limit: int = Query(100, ge=1, le=1000),
) -> list[UserUsage]:
    return [UserUsage(**u) for u in DashboardManager(db).user_activity(start_date, end_date, limit)]


@router.get("/users/top-active", response_model=list[UserUsage])
async def get_top_active_users(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(10, ge=1, le=100),
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> list[UserUsage]:
    """Users with the most connected time in the range."""
    return [UserUsage(**u) for u in DashboardManager(db).top_active_users(limit, start_date, end_date)]


# ============================================================================
# Groups
# ============================================================================


@router.get("/groups", response_model=GroupStatsResponse)
async def get_group_stats(admin: ManagerUser, db: DbSession) -> GroupStatsResponse:
    return GroupStatsResponse(**DashboardManager(db).group_stats())


@router.get("/groups/distribution", response_model=list[GroupDistribution])
async def get_group_distribution(admin: ManagerUser, db: DbSession) -> list[GroupDistribution]:
    return [GroupDistribution(**g) for g in DashboardManager(db).group_distribution()]


# ============================================================================
# Network
# ============================================================================


@router.get("/network", response_model=NetworkStatsResponse)
async def get_network_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> NetworkStatsResponse:
    return NetworkStatsResponse(**DashboardManager(db).network_stats(start_date, end_date))


@router.get("/network/nas-usage", response_model=list[NasUsage])
async def get_nas_usage(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> list[NasUsage]:
    return [NasUsage(**n) for n in DashboardManager(db).nas_usage(start_date, end_date)]


@router.get("/network/bandwidth", response_model=list[BandwidthPoint])
async def get_bandwidth(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None, description="Defaults to 7 days ago"),
    end_date: datetime | None = EndDate,
) -> list[BandwidthPoint]:
    """Input and output octets per day."""
    return [BandwidthPoint(**b) for b in DashboardManager(db).bandwidth(start_date, end_date)]


# ============================================================================
# Real time
# ============================================================================


@router.get("/real-time", response_model=RealTimeResponse)
async def get_real_time(admin: ManagerUser, db: DbSession) -> RealTimeResponse:
    return RealTimeResponse(**DashboardManager(db).real_time())


@router.get("/real-time/active-sessions", response_model=list[SessionResponse])
async def get_real_time_active_sessions(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
) -> list[SessionResponse]:
    return [SessionResponse.from_session(s) for s in DashboardManager(db).real_time_active_sessions(limit)]


@router.get("/real-time/recent-authentications", response_model=list[AuthLogResponse])
async def get_recent_authentications(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
) -> list[AuthLogResponse]:
    return [AuthLogResponse.model_validate(a) for a in DashboardManager(db).recent_authentications(limit)]


@router.get("/real-time/system-alerts", response_model=list[SystemAlert])
async def get_system_alerts(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(20, ge=1, le=100),
) -> list[SystemAlert]:
    return [SystemAlert(**a) for a in DashboardManager(db).system_alerts(limit)]


# ============================================================================
# Reports
# ============================================================================


@router.get("/reports/session-summary", response_model=SessionSummaryReport)
async def get_session_summary_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> SessionSummaryReport:
    return SessionSummaryReport(**DashboardManager(db).session_summary_report(start_date, end_date))


@router.get("/reports/authentication-summary", response_model=AuthenticationSummaryReport)
async def get_authentication_summary_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> AuthenticationSummaryReport:
    return AuthenticationSummaryReport(
        **DashboardManager(db).authentication_summary_report(start_date, end_date)
    )


@router.get("/reports/user-activity", response_model=UserActivityReport)
async def get_user_activity_report(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> UserActivityReport:
    return UserActivityReport(**DashboardManager(db).user_activity_report(start_date, end_date))


# ============================================================================
# Audit
# ============================================================================


@router.get("/audit", response_model=AuditStatistics)
async def get_audit_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> AuditStatistics:
    return AuditStatistics(**DashboardManager(db).audit_stats(start_date, end_date))


@router.get("/audit/recent-activities", response_model=list[ActivityEntry])
async def get_recent_activities(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(20, ge=1, le=200),
) -> list[ActivityEntry]:
    """Authentications and console actions merged, newest first."""
    return [ActivityEntry(**a) for a in DashboardManager(db).recent_activities(limit)]


@router.get("/audit/top-actors", response_model=list[ActiveActor])
async def get_top_audit_actors(
    admin: ManagerUser,
    db: DbSession,
    limit: int = Query(10, ge=1, le=100),
    start_date: datetime | None = StartDate,
    end_date: datetime | None = EndDate,
) -> list[ActiveActor]:
    return [ActiveActor(**a) for a in DashboardManager(db).top_audit_actors(limit, start_date, end_date)]
