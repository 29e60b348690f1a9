"""RADIUS users, groups, sessions, CoA and statistics API endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError

from radius_console.api.deps import DbSession, ManagerUser
from radius_console.core.audit import ENTITY_POLICY_TEMPLATE, AuditManager
from radius_console.core.exceptions import ConflictError, ConsoleError, NotFoundError
from radius_console.core.radius import RadiusManager
from radius_console.schemas.common import MessageResponse, PaginatedResponse
from radius_console.schemas.radius import (
    AuthLogResponse,
    CoaRequestCreate,
    CoaRequestResponse,
    GroupMemberRequest,
    PolicyTemplateApply,
    PolicyTemplateResponse,
    RadiusGroupCreate,
    RadiusGroupResponse,
    RadiusGroupSummary,
    RadiusGroupUpdate,
    RadiusStatistics,
    RadiusUserAttributeCreate,
    RadiusUserAttributeResponse,
    RadiusUserCreate,
    RadiusUserDetailResponse,
    RadiusUserResponse,
    RadiusUserUpdate,
    SessionResponse,
    TopUser,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/radius", tags=["radius"])


def _http_error(e: ConsoleError) -> HTTPException:
    """Map a manager exception to an HTTP error."""
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(e))


def _attrs(items) -> list[dict]:
    return [item.model_dump() for item in items]


def _audit(db, admin: dict, action: str, entity: str, entity_id, before=None, after=None) -> None:
    AuditManager(db).log_user_action(
        admin["sub"], action, entity, entity_id, before, after, admin["ip"], admin["user_agent"]
    )


def _audit_user(db, admin: dict, action: str, username: str, before=None, after=None) -> None:
    AuditManager(db).log_radius_user_action(
        admin["sub"], action, username, before, after, admin["ip"], admin["user_agent"]
    )


def _audit_group(db, admin: dict, action: str, groupname: str, before=None, after=None) -> None:
    AuditManager(db).log_radius_group_action(
        admin["sub"], action, groupname, before, after, admin["ip"], admin["user_agent"]
    )


def _user_snapshot(detail: dict) -> dict:
    return {
        "username": detail["username"],
        "is_active": detail["is_active"],
        "check_attributes": [
            {"attribute": a.attribute, "op": a.op}
            for a in detail["check_attributes"]
            if a.attribute != "Cleartext-Password"
        ],
        "reply_attributes": [
            {"attribute": a.attribute, "op": a.op, "value": a.value}
            for a in detail["reply_attributes"]
        ],
        "groups": detail["groups"],
    }


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=PaginatedResponse[RadiusUserResponse])
async def list_radius_users(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    search: str | None = Query(None, description="Username substring"),
) -> PaginatedResponse[RadiusUserResponse]:
    """List RADIUS users with their attributes and groups.

    Args:
        admin: Authenticated Admin or Manager
        db: Database session
        page: Page number
        page_size: Items per page
        search: Username filter

    Returns:
        Paginated RADIUS users
    """
    logger.info(f"User {admin['username']} listing RADIUS users (page={page})")
    users, total = RadiusManager(db).list_users(page, page_size, search)
    items = [RadiusUserResponse.model_validate(u, from_attributes=True) for u in users]
    return PaginatedResponse[RadiusUserResponse].build(items, total, page, page_size)


@router.post("/users", response_model=RadiusUserDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_radius_user(
    user_data: RadiusUserCreate,
    admin: ManagerUser,
    db: DbSession,
) -> RadiusUserDetailResponse:
    """Create a RADIUS user.

    Raises:
        HTTPException: 409 if the user already exists
    """
    logger.info(f"User {admin['username']} creating RADIUS user: {user_data.username}")
    manager = RadiusManager(db)
    try:
        detail = manager.create_user(
            user_data.username,
            user_data.password,
            _attrs(user_data.check_attributes),
            _attrs(user_data.reply_attributes),
            user_data.groups,
        )
        _audit_user(db, admin, "RADIUS_USER_CREATED", user_data.username,
                    after=_user_snapshot(detail))
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error creating RADIUS user: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="RADIUS user creation failed due to database constraint violation",
        ) from e

    logger.info(f"✅ Created RADIUS user: {user_data.username}")
    return RadiusUserDetailResponse.model_validate(detail, from_attributes=True)


@router.get("/users/{username}", response_model=RadiusUserDetailResponse)
async def get_radius_user(username: str, admin: ManagerUser, db: DbSession) -> RadiusUserDetailResponse:
    """Get a RADIUS user.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    try:
        return RadiusUserDetailResponse.model_validate(RadiusManager(db).get_user(username), from_attributes=True)
    except ConsoleError as e:
        raise _http_error(e) from e


@router.put("/users/{username}", response_model=RadiusUserDetailResponse)
async def update_radius_user(
    username: str,
    user_data: RadiusUserUpdate,
    admin: ManagerUser,
    db: DbSession,
) -> RadiusUserDetailResponse:
    """Update a RADIUS user's password, attributes, groups or status.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    logger.info(f"User {admin['username']} updating RADIUS user {username}")
    manager = RadiusManager(db)
    try:
        before = _user_snapshot(manager.get_user(username))
        manager.update_user(
            username,
            password=user_data.password,
            check_attributes=_attrs(user_data.check_attributes),
            reply_attributes=_attrs(user_data.reply_attributes),
            groups=user_data.groups,
        )
        if user_data.is_active is not None:
            manager.set_active(username, user_data.is_active)
        detail = manager.get_user(username)
        after = _user_snapshot(detail)
        if user_data.password:
            after["password_changed"] = True
        _audit_user(db, admin, "RADIUS_USER_UPDATED", username, before=before, after=after)
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e

    return RadiusUserDetailResponse.model_validate(detail, from_attributes=True)


@router.delete("/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_radius_user(username: str, admin: ManagerUser, db: DbSession) -> None:
    """Delete a RADIUS user with all attributes and memberships.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    manager = RadiusManager(db)
    try:
        before = _user_snapshot(manager.get_user(username))
        manager.delete_user(username)
        _audit_user(db, admin, "RADIUS_USER_DELETED", username, before=before)
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e

    logger.info(f"✅ Deleted RADIUS user: {username}")


@router.get("/users/{username}/attributes", response_model=list[RadiusUserAttributeResponse])
async def get_radius_user_attributes(
    username: str,
    admin: ManagerUser,
    db: DbSession,
) -> list[RadiusUserAttributeResponse]:
    """Check and reply attributes of a user."""
    try:
        rows = RadiusManager(db).get_user_attributes(username)
    except ConsoleError as e:
        raise _http_error(e) from e
    return [RadiusUserAttributeResponse.model_validate(r) for r in rows]


@router.post(
    "/users/{username}/attributes",
    response_model=RadiusUserAttributeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_radius_user_attribute(
    username: str,
    data: RadiusUserAttributeCreate,
    admin: ManagerUser,
    db: DbSession,
) -> RadiusUserAttributeResponse:
    """Add a check or reply attribute row to a user.

    Raises:
        HTTPException: 404 if the user does not exist
    """
    try:
        row = RadiusManager(db).add_user_attribute(username, data.type, data.attribute, data.op, data.value)
        _audit_user(db, admin, "RADIUS_ATTRIBUTE_ADDED", username,
                    after={"type": data.type, "attribute": data.attribute, "op": row.op})
        db.commit()
        db.refresh(row)
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e

    return RadiusUserAttributeResponse(
        id=row.id, type=data.type, attribute=row.attribute, op=row.op, value=row.value
    )


@router.delete("/users/{username}/attributes/{attribute_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_radius_user_attribute(
    username: str,
    attribute_id: int,
    admin: ManagerUser,
    db: DbSession,
    attr_type: str = Query("check", alias="type", pattern="^(check|reply)$", description="Attribute table"),
) -> None:
    """Delete one attribute row of a user.

    Raises:
        HTTPException: 404 if the row does not exist for this user
    """
    try:
        RadiusManager(db).remove_user_attribute(username, attribute_id, attr_type)
        _audit_user(db, admin, "RADIUS_ATTRIBUTE_REMOVED", username,
                    before={"type": attr_type, "attribute_id": attribute_id})
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e


@router.get("/users/{username}/groups", response_model=list[dict])
async def get_radius_user_groups(username: str, admin: ManagerUser, db: DbSession) -> list[dict]:
    """Group memberships of a user, by priority."""
    manager = RadiusManager(db)
    if not manager.user_exists(username):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"RADIUS user '{username}' not found")
    return [{"groupname": m.groupname, "priority": m.priority} for m in manager.get_user_groups(username)]


# ============================================================================
# Groups
# ============================================================================


@router.get("/groups", response_model=PaginatedResponse[RadiusGroupSummary])
async def list_radius_groups(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> PaginatedResponse[RadiusGroupSummary]:
    """List groups with user and attribute counts."""
    groups, total = RadiusManager(db).list_groups(page, page_size)
    items = [RadiusGroupSummary(**g) for g in groups]
    return PaginatedResponse[RadiusGroupSummary].build(items, total, page, page_size)


@router.post("/groups", response_model=RadiusGroupResponse, status_code=status.HTTP_201_CREATED)
async def create_radius_group(
    group_data: RadiusGroupCreate,
    admin: ManagerUser,
    db: DbSession,
) -> RadiusGroupResponse:
    """Create a group from its check and reply attributes.

    Raises:
        HTTPException: 409 if the group already exists
    """
    logger.info(f"User {admin['username']} creating RADIUS group: {group_data.groupname}")
    try:
        group = RadiusManager(db).create_group(
            group_data.groupname,
            _attrs(group_data.check_attributes),
            _attrs(group_data.reply_attributes),
        )
        _audit_group(db, admin, "RADIUS_GROUP_CREATED", group_data.groupname,
                     after=group_data.model_dump())
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error creating RADIUS group: {e}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="RADIUS group creation failed due to database constraint violation",
        ) from e

    logger.info(f"✅ Created RADIUS group: {group_data.groupname}")
    return RadiusGroupResponse.model_validate(group, from_attributes=True)


@router.get("/groups/{groupname}", response_model=RadiusGroupResponse)
async def get_radius_group(groupname: str, admin: ManagerUser, db: DbSession) -> RadiusGroupResponse:
    """Get a group with attributes and members."""
    try:
        return RadiusGroupResponse.model_validate(RadiusManager(db).get_group(groupname), from_attributes=True)
    except ConsoleError as e:
        raise _http_error(e) from e


@router.put("/groups/{groupname}", response_model=RadiusGroupResponse)
async def update_radius_group(
    groupname: str,
    group_data: RadiusGroupUpdate,
    admin: ManagerUser,
    db: DbSession,
) -> RadiusGroupResponse:
    """Upsert group attributes by name."""
    try:
        group = RadiusManager(db).update_group(
            groupname,
            _attrs(group_data.check_attributes),
            _attrs(group_data.reply_attributes),
        )
        _audit_group(db, admin, "RADIUS_GROUP_UPDATED", groupname, after=group_data.model_dump())
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    return RadiusGroupResponse.model_validate(group, from_attributes=True)


@router.delete("/groups/{groupname}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_radius_group(groupname: str, admin: ManagerUser, db: DbSession) -> None:
    """Delete a group's attributes and memberships."""
    try:
        RadiusManager(db).delete_group(groupname)
        _audit_group(db, admin, "RADIUS_GROUP_DELETED", groupname, before={"groupname": groupname})
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    logger.info(f"✅ Deleted RADIUS group: {groupname}")


@router.get("/groups/{groupname}/users", response_model=list[str])
async def get_radius_group_users(groupname: str, admin: ManagerUser, db: DbSession) -> list[str]:
    """Usernames in a group."""
    manager = RadiusManager(db)
    if not manager.group_exists(groupname):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"RADIUS group '{groupname}' not found")
    return manager.get_users_in_group(groupname)


@router.post("/groups/{groupname}/users/{username}", response_model=MessageResponse)
async def add_user_to_group(
    groupname: str,
    username: str,
    admin: ManagerUser,
    db: DbSession,
    data: GroupMemberRequest | None = None,
) -> MessageResponse:
    """Add a user to a group, or update the membership priority."""
    priority = data.priority if data else 1
    try:
        RadiusManager(db).add_user_to_group(username, groupname, priority)
        _audit_group(db, admin, "RADIUS_GROUP_MEMBER_ADDED", groupname,
                     after={"username": username, "priority": priority})
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    return MessageResponse(message=f"User {username} added to group {groupname}")


@router.delete("/groups/{groupname}/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_from_group(groupname: str, username: str, admin: ManagerUser, db: DbSession) -> None:
    """Remove a user from a group."""
    try:
        RadiusManager(db).remove_user_from_group(username, groupname)
        _audit_group(db, admin, "RADIUS_GROUP_MEMBER_REMOVED", groupname,
                     before={"username": username})
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e


# ============================================================================
# Sessions and CoA
# ============================================================================


@router.get("/sessions", response_model=PaginatedResponse[SessionResponse])
async def list_active_sessions(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> PaginatedResponse[SessionResponse]:
    """Active sessions, newest first."""
    sessions, total = RadiusManager(db).get_active_sessions(page, page_size)
    items = [SessionResponse.from_session(s) for s in sessions]
    return PaginatedResponse[SessionResponse].build(items, total, page, page_size)


@router.get("/sessions/user/{username}", response_model=PaginatedResponse[SessionResponse])
async def list_user_sessions(
    username: str,
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> PaginatedResponse[SessionResponse]:
    """Session history of one user."""
    sessions, total = RadiusManager(db).get_user_sessions(username, page, page_size)
    items = [SessionResponse.from_session(s) for s in sessions]
    return PaginatedResponse[SessionResponse].build(items, total, page, page_size)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, admin: ManagerUser, db: DbSession) -> SessionResponse:
    """Get a session by Acct-Session-Id."""
    try:
        return SessionResponse.from_session(RadiusManager(db).get_session(session_id))
    except ConsoleError as e:
        raise _http_error(e) from e


@router.post(
    "/sessions/{session_id}/disconnect",
    response_model=CoaRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def disconnect_session(session_id: str, admin: ManagerUser, db: DbSession) -> CoaRequestResponse:
    """Queue a Disconnect-Request for an active session.

    Raises:
        HTTPException: 404 if the session is unknown, 400 if it has ended
    """
    manager = RadiusManager(db)
    try:
        request = manager.disconnect_session(session_id, requested_by=admin["sub"])
        AuditManager(db).log_session_action(
            admin["sub"], "SESSION_DISCONNECT_REQUESTED", session_id, request.username,
            ip_address=admin["ip"], user_agent=admin["user_agent"],
        )
        db.commit()
        db.refresh(request)
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    return CoaRequestResponse.model_validate(request)


@router.post("/coa", response_model=CoaRequestResponse, status_code=status.HTTP_202_ACCEPTED)
async def send_coa(data: CoaRequestCreate, admin: ManagerUser, db: DbSession) -> CoaRequestResponse:
    """Queue a CoA-Request."""
    request = RadiusManager(db).send_coa_request(
        data.username, data.acct_session_id, data.nas_ip, data.attributes, requested_by=admin["sub"]
    )
    AuditManager(db).log_coa_request(
        admin["sub"], request.id, "coa", data.username, data.acct_session_id,
        ip_address=admin["ip"], user_agent=admin["user_agent"],
    )
    db.commit()
    db.refresh(request)
    return CoaRequestResponse.model_validate(request)


@router.get("/coa", response_model=PaginatedResponse[CoaRequestResponse])
async def list_coa_requests(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
) -> PaginatedResponse[CoaRequestResponse]:
    """Recorded CoA and disconnect requests, newest first."""
    requests, total = RadiusManager(db).list_coa_requests(page, page_size)
    items = [CoaRequestResponse.model_validate(r) for r in requests]
    return PaginatedResponse[CoaRequestResponse].build(items, total, page, page_size)


@router.get("/coa/{request_id}", response_model=CoaRequestResponse)
async def get_coa_request(request_id: int, admin: ManagerUser, db: DbSession) -> CoaRequestResponse:
    try:
        return CoaRequestResponse.model_validate(RadiusManager(db).get_coa_request(request_id))
    except ConsoleError as e:
        raise _http_error(e) from e


# ============================================================================
# Policy templates
# ============================================================================


@router.get("/policy-templates", response_model=list[PolicyTemplateResponse])
async def list_policy_templates(admin: ManagerUser, db: DbSession) -> list[PolicyTemplateResponse]:
    return [PolicyTemplateResponse.model_validate(t) for t in RadiusManager(db).list_policy_templates()]


@router.post("/policy-templates/{template_id}/apply", response_model=MessageResponse)
async def apply_policy_template(
    template_id: int,
    data: PolicyTemplateApply,
    admin: ManagerUser,
    db: DbSession,
) -> MessageResponse:
    """Apply a template's attributes to a user or a group."""
    manager = RadiusManager(db)
    try:
        if data.username:
            template = manager.apply_policy_template_to_user(template_id, data.username)
            target = f"user {data.username}"
        else:
            template = manager.apply_policy_template_to_group(template_id, data.group_name)
            target = f"group {data.group_name}"
        _audit(db, admin, "POLICY_TEMPLATE_APPLIED", ENTITY_POLICY_TEMPLATE, template_id,
               after={"template": template.name, "username": data.username, "group_name": data.group_name})
        db.commit()
    except ConsoleError as e:
        db.rollback()
        raise _http_error(e) from e
    return MessageResponse(message=f"Policy template '{template.name}' applied to {target}")


# ============================================================================
# Logs and statistics
# ============================================================================


@router.get("/auth-logs", response_model=PaginatedResponse[AuthLogResponse])
async def list_auth_logs(
    admin: ManagerUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    username: str | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> PaginatedResponse[AuthLogResponse]:
    """Post-auth log, newest first."""
    logs, total = RadiusManager(db).get_auth_logs(page, page_size, username, start_date, end_date)
    items = [AuthLogResponse.model_validate(entry) for entry in logs]
    return PaginatedResponse[AuthLogResponse].build(items, total, page, page_size)


@router.get("/stats/overview", response_model=RadiusStatistics)
async def get_radius_stats(admin: ManagerUser, db: DbSession) -> RadiusStatistics:
    return RadiusStatistics(**RadiusManager(db).get_statistics())


@router.get("/stats/sessions", response_model=dict[str, int])
async def get_session_stats(admin: ManagerUser, db: DbSession) -> dict[str, int]:
    """Active sessions per NAS IP."""
    return RadiusManager(db).get_session_stats_by_nas()


@router.get("/stats/authentication", response_model=dict[str, int])
async def get_auth_stats(
    admin: ManagerUser,
    db: DbSession,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
) -> dict[str, int]:
    """Authentication counts by result."""
    return RadiusManager(db).get_auth_stats_by_result(start_date, end_date)


@router.get("/stats/top-users", response_model=list[TopUser])
async def get_top_users(
    admin: ManagerUser,
    db: DbSession,
    count: int = Query(10, ge=1, le=100),
) -> list[TopUser]:
    return [TopUser(**u) for u in RadiusManager(db).get_top_users(count)]
