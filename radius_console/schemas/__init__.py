"""Pydantic schemas package."""

from .common import MessageResponse, PaginatedResponse
from .auth import (
    ChangePasswordRequest,
    CurrentUserResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from .users import (
    RoleAssignmentRequest,
    RoleResponse,
    TotpDisableRequest,
    TotpEnableRequest,
    TotpSetupResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from .radius import (
    AuthLogResponse,
    CoaRequestCreate,
    CoaRequestResponse,
    PolicyTemplateApply,
    PolicyTemplateResponse,
    RadiusAttribute,
    RadiusGroupCreate,
    RadiusGroupResponse,
    RadiusGroupSummary,
    RadiusGroupUpdate,
    RadiusUserCreate,
    RadiusUserDetailResponse,
    RadiusUserResponse,
    RadiusUserUpdate,
    SessionResponse,
)
from .audit import AuditLogResponse, AuditStatistics, SecurityAlertResponse

__all__ = [
    # Common
    "MessageResponse",
    "PaginatedResponse",
    # Auth
    "ChangePasswordRequest",
    "CurrentUserResponse",
    "ForgotPasswordRequest",
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    # Console users
    "RoleAssignmentRequest",
    "RoleResponse",
    "TotpDisableRequest",
    "TotpEnableRequest",
    "TotpSetupResponse",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
    # RADIUS
    "AuthLogResponse",
    "CoaRequestCreate",
    "CoaRequestResponse",
    "PolicyTemplateApply",
    "PolicyTemplateResponse",
    "RadiusAttribute",
    "RadiusGroupCreate",
    "RadiusGroupResponse",
    "RadiusGroupSummary",
    "RadiusGroupUpdate",
    "RadiusUserCreate",
    "RadiusUserDetailResponse",
    "RadiusUserResponse",
    "RadiusUserUpdate",
    "SessionResponse",
    # Audit
    "AuditLogResponse",
    "AuditStatistics",
    "SecurityAlertResponse",
]
