"""Audit log schemas."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: int
    timestamp: datetime
    actor_id: Optional[str] = None
    actor_username: Optional[str] = None
    action: str
    entity: str
    entity_id: Optional[str] = None
    before_data: Optional[dict] = None
    after_data: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class SecurityAlertResponse(AuditLogResponse):
    severity: str = Field(..., description="High for UNAUTHORIZED actions, otherwise Medium")


class AuditStatistics(BaseModel):
    total_logs: int
    logs_today: int
    unique_actors: int
    failed_logins: int
    by_action: Dict[str, int] = Field(default_factory=dict)
    by_entity: Dict[str, int] = Field(default_factory=dict)


class DateCount(BaseModel):
    date: str = Field(..., examples=["2026-01-13", "2026-W2", "2026-01"])
    count: int


class ActiveActor(BaseModel):
    actor_id: str
    username: str
    action_count: int
    last_activity: Optional[datetime] = None


class RetentionRequest(BaseModel):
    older_than_days: int = Field(..., ge=1, description="Remove entries older than this many days")


class CleanupResponse(BaseModel):
    deleted: int
    older_than_days: int


class ArchiveResponse(BaseModel):
    archived: int
    older_than_days: int
    archive_path: Optional[str] = None


class Anomaly(BaseModel):
    actor_id: str
    username: Optional[str] = None
    hour: datetime
    action_count: int
    threshold: int


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime


class SummaryReport(BaseModel):
    period: ReportPeriod
    generated_at: datetime
    statistics: AuditStatistics
    most_active_users: List[ActiveActor] = Field(default_factory=list)
    security_alert_count: int


class DetailedReport(BaseModel):
    period: ReportPeriod
    generated_at: datetime
    total: int
    truncated: bool
    entries: List[AuditLogResponse] = Field(default_factory=list)


class SuspiciousActor(BaseModel):
    username: Optional[str] = None
    failed_attempts: int


class ComplianceReport(BaseModel):
    period: ReportPeriod
    generated_at: datetime
    categories: Dict[str, int]
    failed_logins: int
    suspicious_actors: List[SuspiciousActor] = Field(default_factory=list)
