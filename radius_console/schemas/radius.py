"""RADIUS users, groups, sessions and logs schemas."""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from radius_console.core.radius import session_duration

RADIUS_OPERATORS = ("=", ":=", "==", "+=", "!=", ">", ">=", "<", "<=", "=~", "!~", "=*", "!*")
NAME_PATTERN = r"^[A-Za-z0-9_.@:-]+$"
GroupName = Annotated[str, StringConstraints(min_length=1, max_length=64, pattern=NAME_PATTERN)]


class RadiusAttribute(BaseModel):
    """One attribute/operator/value triple."""

    attribute: str = Field(..., min_length=1, max_length=64, examples=["Session-Timeout"])
    op: Optional[str] = Field(None, max_length=2, description="Operator; defaults per table", examples=[":="])
    value: str = Field(..., max_length=253, examples=["3600"])

    @field_validator("op")
    @classmethod
    def validate_op(cls, v: Optional[str]) -> Optional[str]:
        """Only FreeRADIUS operators are accepted."""
        if v is not None and v not in RADIUS_OPERATORS:
            raise ValueError(f"Invalid operator '{v}'")
        return v


class RadiusAttributeResponse(BaseModel):
    id: int
    attribute: str
    op: str
    value: str

    model_config = ConfigDict(from_attributes=True)


class RadiusUserAttributeResponse(RadiusAttributeResponse):
    type: Literal["check", "reply"]


class RadiusUserAttributeCreate(RadiusAttribute):
    type: Literal["check", "reply"] = Field(..., description="Target table")


class RadiusUserCreate(BaseModel):
    """Schema for creating a RADIUS user."""

    username: str = Field(..., min_length=3, max_length=64, pattern=NAME_PATTERN, examples=["alice"])
    password: str = Field(..., min_length=6, max_length=253)
    check_attributes: List[RadiusAttribute] = Field(default_factory=list)
    reply_attributes: List[RadiusAttribute] = Field(default_factory=list)
    groups: List[GroupName] = Field(default_factory=list, examples=[["staff"]])


class RadiusUserUpdate(BaseModel):
    """Schema for updating a RADIUS user; ``groups`` replaces membership when set."""

    password: Optional[str] = Field(None, min_length=6, max_length=253)
    check_attributes: List[RadiusAttribute] = Field(default_factory=list)
    reply_attributes: List[RadiusAttribute] = Field(default_factory=list)
    groups: Optional[List[GroupName]] = None
    is_active: Optional[bool] = Field(None, description="Enable or disable the user")


class RadiusUserResponse(BaseModel):
    username: str
    is_active: bool
    last_auth: Optional[datetime] = None
    check_attributes: List[RadiusAttributeResponse] = Field(default_factory=list)
    reply_attributes: List[RadiusAttributeResponse] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class GroupMembership(BaseModel):
    groupname: str
    priority: int

    model_config = ConfigDict(from_attributes=True)


class RadiusUserDetailResponse(RadiusUserResponse):
    group_memberships: List[GroupMembership] = Field(default_factory=list)
    last_login: Optional[datetime] = None
    last_auth_result: Optional[str] = None


class RadiusGroupCreate(BaseModel):
    groupname: str = Field(..., min_length=1, max_length=64, pattern=NAME_PATTERN, examples=["staff"])
    check_attributes: List[RadiusAttribute] = Field(default_factory=list)
    reply_attributes: List[RadiusAttribute] = Field(default_factory=list)


class RadiusGroupUpdate(BaseModel):
    check_attributes: List[RadiusAttribute] = Field(default_factory=list)
    reply_attributes: List[RadiusAttribute] = Field(default_factory=list)


class RadiusGroupSummary(BaseModel):
    groupname: str
    user_count: int
    check_count: int
    reply_count: int


class RadiusGroupResponse(BaseModel):
    groupname: str
    check_attributes: List[RadiusAttributeResponse] = Field(default_factory=list)
    reply_attributes: List[RadiusAttributeResponse] = Field(default_factory=list)
    users: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class GroupMemberRequest(BaseModel):
    priority: int = Field(default=1, ge=0, le=1000)


class SessionResponse(BaseModel):
    """Accounting record."""

    radacctid: int
    acctsessionid: str
    acctuniqueid: str
    username: str
    groupname: Optional[str] = None
    nasipaddress: str
    nasportid: Optional[str] = None
    nasporttype: Optional[str] = None
    acctstarttime: Optional[datetime] = None
    acctupdatetime: Optional[datetime] = None
    acctstoptime: Optional[datetime] = None
    acctsessiontime: Optional[int] = None
    acctinputoctets: Optional[int] = None
    acctoutputoctets: Optional[int] = None
    calledstationid: str = ""
    callingstationid: str = ""
    acctterminatecause: str = ""
    framedipaddress: str = ""
    is_active: bool = False
    duration: int = Field(0, description="Seconds connected; running sessions count up to now")

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_session(cls, session) -> "SessionResponse":
        """Build from a ``RadAcct`` row, deriving ``is_active`` and ``duration``."""
        return cls.model_validate(session).model_copy(
            update={
                "is_active": session.acctstoptime is None,
                "duration": session_duration(session),
            }
        )


class CoaRequestCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    acct_session_id: str = Field(..., min_length=1, max_length=64)
    nas_ip: str = Field(..., min_length=1, max_length=45)
    attributes: Dict[str, str] = Field(default_factory=dict, examples=[{"Session-Timeout": "600"}])


class CoaRequestResponse(BaseModel):
    id: int
    acct_session_id: str
    username: Optional[str] = None
    nas_ip: str
    request_type: str
    status: str
    request_data: Optional[dict] = None
    response_data: Optional[dict] = None
    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthLogResponse(BaseModel):
    """Post-auth record; the submitted password is never included."""

    id: int
    username: str
    reply: str
    authdate: datetime

    model_config = ConfigDict(from_attributes=True)


class PolicyTemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    check_attributes: Dict[str, str] = Field(default_factory=dict)
    reply_attributes: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("check_attributes", "reply_attributes", mode="before")
    @classmethod
    def stringify_values(cls, v: Optional[Dict[str, Any]]) -> Dict[str, str]:
        """Numeric values stored in the JSON columns are returned as strings."""
        return {k: "" if value is None else str(value) for k, value in (v or {}).items()}


class PolicyTemplateApply(BaseModel):
    """Target of a template: exactly one of ``username`` / ``group_name``."""

    username: Optional[str] = None
    group_name: Optional[str] = None

    @model_validator(mode="after")
    def check_single_target(self) -> "PolicyTemplateApply":
        if bool(self.username) == bool(self.group_name):
            raise ValueError("Provide exactly one of username or group_name")
        return self


class RadiusStatistics(BaseModel):
    total_users: int
    active_users: int
    total_sessions: int
    active_sessions: int
    total_groups: int


class TopUser(BaseModel):
    username: str
    session_count: int
    total_input_octets: int
    total_output_octets: int
    total_session_time: int
    last_session: Optional[datetime] = None
