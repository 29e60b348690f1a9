"""Dashboard response schemas."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class OverviewResponse(BaseModel):
    """Headline numbers for the selected period."""

    start: datetime
    end: datetime
    total_users: int = Field(..., description="Console users")
    radius_users: int = Field(..., description="Distinct usernames in radcheck")
    active_sessions: int
    sessions_in_range: int
    total_authentications: int
    successful_authentications: int
    failed_authentications: int


class UserStatsResponse(BaseModel):
    total_users: int
    active_users: int
    totp_enabled_users: int
    radius_users: int
    new_users_today: int
    new_users_this_week: int
    new_users_this_month: int


class UserUsage(BaseModel):
    username: str
    session_count: int
    total_session_time: int
    total_input_octets: int
    total_output_octets: int
    total_bytes: int
    last_session: Optional[datetime] = None


class SessionStatsResponse(BaseModel):
    start: datetime
    end: datetime
    total_sessions: int
    active_sessions: int
    average_session_duration: float = Field(..., description="Seconds")
    total_input_octets: int
    total_output_octets: int
    total_bytes: int
    unique_users: int


class HourlySessionCount(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    count: int


class DailySessionStats(BaseModel):
    date: str
    session_count: int
    unique_users: int
    total_session_time: int


class AuthStatsResponse(BaseModel):
    start: datetime
    end: datetime
    total_authentications: int
    successful_authentications: int
    failed_authentications: int
    success_rate: float = Field(..., description="Percentage of Access-Accept replies")
    by_result: Dict[str, int] = Field(default_factory=dict)


class HourlyAuthStats(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    total: int
    successful: int
    failed: int


class DailyAuthStats(BaseModel):
    date: str
    total: int
    successful: int
    failed: int
    success_rate: float


class GroupStatsResponse(BaseModel):
    total_groups: int
    total_memberships: int
    average_users_per_group: float


class GroupDistribution(BaseModel):
    groupname: str
    user_count: int


class NetworkStatsResponse(BaseModel):
    start: datetime
    end: datetime
    total_sessions: int
    total_input_octets: int
    total_output_octets: int
    total_bytes: int
    average_bytes_per_session: float


class NasUsage(BaseModel):
    nas_ip: str
    session_count: int
    total_bytes: int
    unique_users: int


class BandwidthPoint(BaseModel):
    date: str
    input_octets: int
    output_octets: int
    total_bytes: int


class RealTimeResponse(BaseModel):
    timestamp: datetime
    active_sessions: int
    authentications_last_minute: int
    successful_authentications_last_minute: int
    failed_authentications_last_minute: int
    new_sessions_last_minute: int


class SystemAlert(BaseModel):
    type: str
    severity: str
    message: str
    value: int
    threshold: int
    timestamp: datetime


class ActivityEntry(BaseModel):
    type: str = Field(..., description="authentication or audit")
    timestamp: datetime
    username: Optional[str] = None
    action: str
    details: Optional[str] = None


class SessionSummaryReport(BaseModel):
    start: datetime
    end: datetime
    generated_at: datetime
    summary: SessionStatsResponse
    nas_usage: List[NasUsage] = Field(default_factory=list)
    top_users: List[UserUsage] = Field(default_factory=list)


class AuthenticationSummaryReport(BaseModel):
    start: datetime
    end: datetime
    generated_at: datetime
    summary: AuthStatsResponse
    daily: List[DailyAuthStats] = Field(default_factory=list)


class UserActivityReport(BaseModel):
    start: datetime
    end: datetime
    generated_at: datetime
    user_stats: UserStatsResponse
    activity: List[UserUsage] = Field(default_factory=list)


class SystemHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database_connected: bool
    app_users: Optional[int] = None
    radius_users: Optional[int] = None
    active_sessions: Optional[int] = None
    audit_logs: Optional[int] = None
    failed_authentications_last_hour: Optional[int] = None


class HealthResponse(BaseModel):
    """``GET /health``"""

    status: str = Field(..., description="healthy or unhealthy")
    timestamp: str = Field(..., description="ISO timestamp of check")
    database_connected: bool
    app_users: int = 0
    radius_users: int = 0
