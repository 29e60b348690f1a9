"""Database models.

Two groups of tables live in the same metadata:

- console tables (``app_users``, ``rbac_*``, ``audit_log``, ``coa_requests``,
  ``policy_templates``, ``app_settings``) owned by this application
- the standard FreeRADIUS SQL schema (``radcheck``, ``radreply``,
  ``radusergroup``, ``radgroupcheck``, ``radgroupreply``, ``radacct``,
  ``radpostauth``) shared with the RADIUS daemon
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


# ============================================================================
# Console identity and authorization
# ============================================================================


class AppUser(Base):
    """Console operator account."""

    __tablename__ = "app_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    username: Mapped[str] = mapped_column(String(256), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(256), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Two-factor
    is_totp_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    totp_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)  # Fernet-encrypted
    totp_last_step: Mapped[int | None] = mapped_column(BigInteger, nullable=True)  # last accepted 30s step

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<AppUser {self.username} ({self.email})>"


class RbacRole(Base):
    """Named role with a list of permission strings."""

    __tablename__ = "rbac_roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    permissions: Mapped[list] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        return f"<RbacRole {self.name}>"


class RbacUserRole(Base):
    """Role membership of a console user."""

    __tablename__ = "rbac_user_roles"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("app_users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("rbac_roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    assigned_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<RbacUserRole {self.user_id} -> {self.role_id}>"


class AuditLog(Base):
    """Append-only record of an action taken in the console."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    actor_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("app_users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    before_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
        index=True,
    )
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity}:{self.entity_id}>"


class CoaRequest(Base):
    """Recorded Change-of-Authorization / Disconnect request.

    Rows are written by the console; delivery to the NAS is left to an
    external worker, so status stays ``pending`` until something updates it.
    """

    __tablename__ = "coa_requests"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    acct_session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    nas_ip: Mapped[str] = mapped_column(String(45), nullable=False)
    request_type: Mapped[str] = mapped_column(String(20), nullable=False)  # disconnect, coa
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending, sent, success, failed
    request_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    response_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    requested_by: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("app_users.id", ondelete="SET NULL"),
        nullable=True,
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<CoaRequest {self.request_type} {self.acct_session_id} ({self.status})>"


class PolicyTemplate(Base):
    """Reusable bundle of check and reply attributes."""

    __tablename__ = "policy_templates"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # {"Attribute-Name": "value"} maps, applied with op ":=" / "="
    check_attributes: Mapped[dict] = mapped_column(JSON, default=dict)
    reply_attributes: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<PolicyTemplate {self.name}>"


class AppSetting(Base):
    """Key/value application setting."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<AppSetting {self.key}>"


# ============================================================================
# FreeRADIUS SQL schema
# ============================================================================


class RadCheck(Base):
    """Per-user check attributes (e.g. Cleartext-Password)."""

    __tablename__ = "radcheck"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    attribute: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    op: Mapped[str] = mapped_column(String(2), nullable=False, default=":=")
    value: Mapped[str] = mapped_column(String(253), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<RadCheck {self.username} {self.attribute} {self.op}>"


class RadReply(Base):
    """Per-user reply attributes."""

    __tablename__ = "radreply"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    attribute: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    op: Mapped[str] = mapped_column(String(2), nullable=False, default="=")
    value: Mapped[str] = mapped_column(String(253), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<RadReply {self.username} {self.attribute} {self.op}>"


class RadUserGroup(Base):
    """User to group membership with priority."""

    __tablename__ = "radusergroup"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    groupname: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<RadUserGroup {self.username} in {self.groupname} ({self.priority})>"


class RadGroupCheck(Base):
    """Per-group check attributes."""

    __tablename__ = "radgroupcheck"

    id: Mapped[int] = mapped_column(primary_key=True)
    groupname: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    attribute: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    op: Mapped[str] = mapped_column(String(2), nullable=False, default=":=")
    value: Mapped[str] = mapped_column(String(253), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<RadGroupCheck {self.groupname} {self.attribute} {self.op}>"


class RadGroupReply(Base):
    """Per-group reply attributes."""

    __tablename__ = "radgroupreply"

    id: Mapped[int] = mapped_column(primary_key=True)
    groupname: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    attribute: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    op: Mapped[str] = mapped_column(String(2), nullable=False, default=":=")
    value: Mapped[str] = mapped_column(String(253), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<RadGroupReply {self.groupname} {self.attribute} {self.op}>"


class RadAcct(Base):
    """Accounting record; a session is active while ``acctstoptime`` is NULL."""

    __tablename__ = "radacct"

    radacctid: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    acctsessionid: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    acctuniqueid: Mapped[str] = mapped_column(String(32), nullable=False, default="", unique=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    groupname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    realm: Mapped[str | None] = mapped_column(String(64), nullable=True)

    nasipaddress: Mapped[str] = mapped_column(String(15), nullable=False, default="", index=True)
    nasportid: Mapped[str | None] = mapped_column(String(15), nullable=True)
    nasporttype: Mapped[str | None] = mapped_column(String(32), nullable=True)

    acctstarttime: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    acctupdatetime: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    acctstoptime: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    acctinterval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    acctsessiontime: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    acctauthentic: Mapped[str | None] = mapped_column(String(32), nullable=True)

    connectinfo_start: Mapped[str | None] = mapped_column(String(50), nullable=True)
    connectinfo_stop: Mapped[str | None] = mapped_column(String(50), nullable=True)

    acctinputoctets: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    acctoutputoctets: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    calledstationid: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    callingstationid: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    acctterminatecause: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    servicetype: Mapped[str | None] = mapped_column(String(32), nullable=True)
    framedprotocol: Mapped[str | None] = mapped_column(String(32), nullable=True)
    framedipaddress: Mapped[str] = mapped_column(String(15), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<RadAcct {self.acctsessionid} {self.username}>"


class RadPostAuth(Base):
    """Post-authentication log written by FreeRADIUS."""

    __tablename__ = "radpostauth"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, default="", index=True)
    # Stored by the daemon; never returned by the console API
    pass_: Mapped[str] = mapped_column("pass", String(64), nullable=False, default="")
    reply: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    authdate: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<RadPostAuth {self.username} {self.reply}>"
