"""FreeRADIUS SQL data management.

Works directly on the standard FreeRADIUS tables. A RADIUS user exists while
it has at least one ``radcheck`` row; a group exists while any of
``radusergroup``, ``radgroupcheck`` or ``radgroupreply`` mentions it.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, union
from sqlalchemy.orm import Session

from radius_console.core.exceptions import ConflictError, NotFoundError, ValidationError
from radius_console.db.models import (
    CoaRequest,
    PolicyTemplate,
    RadAcct,
    RadCheck,
    RadGroupCheck,
    RadGroupReply,
    RadPostAuth,
    RadReply,
    RadUserGroup,
)
from radius_console.utils.dates import to_naive_utc

logger = logging.getLogger(__name__)

PASSWORD_ATTRIBUTE = "Cleartext-Password"
AUTH_TYPE_ATTRIBUTE = "Auth-Type"
AUTH_TYPE_REJECT = "Reject"

ATTRIBUTE_TYPES = ("check", "reply")

# radpostauth.reply value -> result label
AUTH_RESULT_LABELS = {
    "Access-Accept": "Accept",
    "Access-Reject": "Reject",
    "Access-Challenge": "Challenge",
}


def _attr_fields(item: dict, default_op: str) -> tuple[str, str, str]:
    """Unpack an ``{"attribute", "op", "value"}`` mapping."""
    attribute = (item.get("attribute") or "").strip()
    if not attribute:
        raise ValidationError("Attribute name is required")
    op = item.get("op") or default_op
    value = "" if item.get("value") is None else str(item["value"])
    return attribute, op, value


class RadiusManager:
    """Manages RADIUS users, groups, sessions and authentication logs."""

    def __init__(self, db: Session):
        """
        Initialize RADIUS manager.

        Args:
            db: Database session
        """
        self.db = db

    # ========================================================================
    # Users
    # ========================================================================

    def user_exists(self, username: str) -> bool:
        return self.db.execute(
            select(RadCheck.id).where(RadCheck.username == username).limit(1)
        ).first() is not None

    def _require_user(self, username: str) -> None:
        if not self.user_exists(username):
            raise NotFoundError(f"RADIUS user '{username}' not found")

    def is_user_active(self, username: str) -> bool:
        """Active unless an ``Auth-Type := Reject`` check is present."""
        return self.db.execute(
            select(RadCheck.id).where(
                RadCheck.username == username,
                RadCheck.attribute == AUTH_TYPE_ATTRIBUTE,
                RadCheck.value == AUTH_TYPE_REJECT,
            ).limit(1)
        ).first() is None

    def get_last_auth(self, username: str) -> RadPostAuth | None:
        return self.db.execute(
            select(RadPostAuth)
            .where(RadPostAuth.username == username)
            .order_by(RadPostAuth.authdate.desc(), RadPostAuth.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _user_summary(self, username: str) -> dict:
        last_auth = self.get_last_auth(username)
        return {
            "username": username,
            "is_active": self.is_user_active(username),
            "last_auth": last_auth.authdate if last_auth else None,
            "check_attributes": self.get_user_check_attributes(username),
            "reply_attributes": self.get_user_reply_attributes(username),
            "groups": [m.groupname for m in self.get_user_groups(username)],
        }

    def list_users(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
    ) -> tuple[list[dict], int]:
        """Page through RADIUS usernames found in ``radcheck``.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            search: Username substring; the literal ``"undefined"`` is ignored

        Returns:
            Tuple of (user summaries, total matching users)
        """
        query = select(RadCheck.username).distinct()
        if search and search != "undefined":
            query = query.where(RadCheck.username.ilike(f"%{search}%"))

        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0

        names = self.db.execute(
            query.order_by(RadCheck.username).offset((page - 1) * page_size).limit(page_size)
        ).scalars().all()

        return [self._user_summary(name) for name in names], total

    def get_user(self, username: str) -> dict:
        """Full detail of a RADIUS user.

        Raises:
            NotFoundError: User does not exist
        """
        self._require_user(username)

        detail = self._user_summary(username)
        detail["group_memberships"] = [
            {"groupname": m.groupname, "priority": m.priority}
            for m in self.get_user_groups(username)
        ]
        detail["last_login"] = self.db.execute(
            select(func.max(RadAcct.acctstarttime)).where(RadAcct.username == username)
        ).scalar()
        last_auth = self.get_last_auth(username)
        detail["last_auth_result"] = last_auth.reply if last_auth else None
        return detail

    def create_user(
        self,
        username: str,
        password: str,
        check_attributes: Iterable[dict] = (),
        reply_attributes: Iterable[dict] = (),
        groups: Iterable[str] = (),
    ) -> dict:
        """Create a RADIUS user with a ``Cleartext-Password`` check.

        Raises:
            ConflictError: User already exists
        """
        if self.user_exists(username):
            raise ConflictError(f"RADIUS user '{username}' already exists")

        self.db.add(RadCheck(username=username, attribute=PASSWORD_ATTRIBUTE, op=":=", value=password))
        for item in check_attributes:
            attribute, op, value = _attr_fields(item, ":=")
            if attribute == PASSWORD_ATTRIBUTE:
                continue
            self.db.add(RadCheck(username=username, attribute=attribute, op=op, value=value))
        for item in reply_attributes:
            attribute, op, value = _attr_fields(item, "=")
            self.db.add(RadReply(username=username, attribute=attribute, op=op, value=value))
        for groupname in dict.fromkeys(groups):
            self.db.add(RadUserGroup(username=username, groupname=groupname, priority=1))
        self.db.flush()

        logger.info(f"Created RADIUS user '{username}'")
        return self.get_user(username)

    def update_user(
        self,
        username: str,
        password: str | None = None,
        check_attributes: Iterable[dict] | None = None,
        reply_attributes: Iterable[dict] | None = None,
        groups: Iterable[str] | None = None,
    ) -> dict:
        """Update a RADIUS user.

        Attributes are upserted by name; ``groups``, when given, replaces the
        membership list.

        Raises:
            NotFoundError: User does not exist
        """
        self._require_user(username)

        if password:
            self.set_user_check_attribute(username, PASSWORD_ATTRIBUTE, ":=", password)
        for item in check_attributes or ():
            attribute, op, value = _attr_fields(item, ":=")
            self.set_user_check_attribute(username, attribute, op, value)
        for item in reply_attributes or ():
            attribute, op, value = _attr_fields(item, "=")
            self.set_user_reply_attribute(username, attribute, op, value)

        if groups is not None:
            self.remove_user_from_all_groups(username)
            for groupname in dict.fromkeys(groups):
                self.db.add(RadUserGroup(username=username, groupname=groupname, priority=1))
            self.db.flush()

        return self.get_user(username)

    def delete_user(self, username: str) -> None:
        """Remove every radcheck, radreply and radusergroup row of ``username``.

        Raises:
            NotFoundError: User does not exist
        """
        self._require_user(username)
        self.clear_user_attributes(username)
        self.remove_user_from_all_groups(username)
        logger.info(f"Deleted RADIUS user '{username}'")

    def set_active(self, username: str, active: bool) -> None:
        """Enable or disable a user via ``Auth-Type := Reject``."""
        self._require_user(username)
        if active:
            self.db.execute(
                delete(RadCheck).where(
                    RadCheck.username == username,
                    RadCheck.attribute == AUTH_TYPE_ATTRIBUTE,
                    RadCheck.value == AUTH_TYPE_REJECT,
                )
            )
            self.db.flush()
        else:
            self.set_user_check_attribute(username, AUTH_TYPE_ATTRIBUTE, ":=", AUTH_TYPE_REJECT)

    # ------------------------------------------------------------------------
    # User attributes
    # ------------------------------------------------------------------------

    def get_user_check_attributes(self, username: str) -> list[RadCheck]:
        return list(
            self.db.execute(
                select(RadCheck).where(RadCheck.username == username).order_by(RadCheck.id)
            ).scalars().all()
        )

    def get_user_reply_attributes(self, username: str) -> list[RadReply]:
        return list(
            self.db.execute(
                select(RadReply).where(RadReply.username == username).order_by(RadReply.id)
            ).scalars().all()
        )

    def get_user_attributes(self, username: str) -> list[dict]:
        """Check and reply rows of a user, tagged with their type."""
        self._require_user(username)
        rows = [
            {"id": r.id, "type": "check", "attribute": r.attribute, "op": r.op, "value": r.value}
            for r in self.get_user_check_attributes(username)
        ]
        rows += [
            {"id": r.id, "type": "reply", "attribute": r.attribute, "op": r.op, "value": r.value}
            for r in self.get_user_reply_attributes(username)
        ]
        return rows

    def add_user_attribute(
        self,
        username: str,
        attr_type: str,
        attribute: str,
        op: str | None,
        value: str,
    ) -> RadCheck | RadReply:
        """Append a check or reply attribute row to an existing user."""
        self._require_user(username)
        if attr_type == "check":
            row = RadCheck(username=username, attribute=attribute, op=op or ":=", value=value)
        elif attr_type == "reply":
            row = RadReply(username=username, attribute=attribute, op=op or "=", value=value)
        else:
            raise ValidationError(f"Attribute type must be one of {ATTRIBUTE_TYPES}")
        self.db.add(row)
        self.db.flush()
        return row

    def remove_user_attribute(self, username: str, attribute_id: int, attr_type: str) -> None:
        """Delete one attribute row by id.

        Raises:
            NotFoundError: No such row for this user
            ValidationError: Unknown attribute type
        """
        if attr_type == "check":
            model = RadCheck
        elif attr_type == "reply":
            model = RadReply
        else:
            raise ValidationError(f"Attribute type must be one of {ATTRIBUTE_TYPES}")

        row = self.db.get(model, attribute_id)
        if row is None or row.username != username:
            raise NotFoundError(f"Attribute {attribute_id} not found for user '{username}'")
        self.db.delete(row)
        self.db.flush()

    def _upsert(self, model, key_field: str, key: str, attribute: str, op: str, value: str):
        row = self.db.execute(
            select(model).where(
                getattr(model, key_field) == key,
                model.attribute == attribute,
            ).limit(1)
        ).scalar_one_or_none()
        if row is None:
            row = model(**{key_field: key}, attribute=attribute, op=op, value=value)
            self.db.add(row)
        else:
            row.op = op
            row.value = value
        self.db.flush()
        return row

    def _remove(self, model, key_field: str, key: str, attribute: str) -> bool:
        result = self.db.execute(
            delete(model).where(getattr(model, key_field) == key, model.attribute == attribute)
        )
        self.db.flush()
        return result.rowcount > 0

    def set_user_check_attribute(self, username: str, attribute: str, op: str, value: str) -> RadCheck:
        return self._upsert(RadCheck, "username", username, attribute, op, value)

    def set_user_reply_attribute(self, username: str, attribute: str, op: str, value: str) -> RadReply:
        return self._upsert(RadReply, "username", username, attribute, op, value)

    def remove_user_check_attribute(self, username: str, attribute: str) -> bool:
        return self._remove(RadCheck, "username", username, attribute)

    def remove_user_reply_attribute(self, username: str, attribute: str) -> bool:
        return self._remove(RadReply, "username", username, attribute)

    def clear_user_attributes(self, username: str) -> None:
        self.db.execute(delete(RadCheck).where(RadCheck.username == username))
        self.db.execute(delete(RadReply).where(RadReply.username == username))
        self.db.flush()

    # ========================================================================
    # Groups
    # ========================================================================

    def _group_names_query(self):
        return union(
            select(RadUserGroup.groupname.label("groupname")),
            select(RadGroupCheck.groupname.label("groupname")),
            select(RadGroupReply.groupname.label("groupname")),
        ).subquery()

    def group_exists(self, groupname: str) -> bool:
        for model in (RadUserGroup, RadGroupCheck, RadGroupReply):
            found = self.db.execute(
                select(model.id).where(model.groupname == groupname).limit(1)
            ).first()
            if found is not None:
                return True
        return False

    def _require_group(self, groupname: str) -> None:
        if not self.group_exists(groupname):
            raise NotFoundError(f"RADIUS group '{groupname}' not found")

    def count_groups(self) -> int:
        names = self._group_names_query()
        return self.db.execute(select(func.count()).select_from(names)).scalar() or 0

    def list_group_names(self) -> list[str]:
        names = self._group_names_query()
        return list(self.db.execute(select(names.c.groupname).order_by(names.c.groupname)).scalars().all())

    def _count_by_group(self, model, groupnames: list[str]) -> dict[str, int]:
        rows = self.db.execute(
            select(model.groupname, func.count(model.id))
            .where(model.groupname.in_(groupnames))
            .group_by(model.groupname)
        ).all()
        return {name: count for name, count in rows}

    def list_groups(self, page: int = 1, page_size: int = 10) -> tuple[list[dict], int]:
        """Page through groups with user and attribute counts.

        Returns:
            Tuple of (group summaries, total groups)
        """
        names = self._group_names_query()
        total = self.db.execute(select(func.count()).select_from(names)).scalar() or 0

        page_names = list(
            self.db.execute(
                select(names.c.groupname)
                .order_by(names.c.groupname)
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).scalars().all()
        )

        user_counts = self._count_by_group(RadUserGroup, page_names)
        check_counts = self._count_by_group(RadGroupCheck, page_names)
        reply_counts = self._count_by_group(RadGroupReply, page_names)

        groups = [
            {
                "groupname": name,
                "user_count": user_counts.get(name, 0),
                "check_count": check_counts.get(name, 0),
                "reply_count": reply_counts.get(name, 0),
            }
            for name in page_names
        ]
        return groups, total

    def get_group_check_attributes(self, groupname: str) -> list[RadGroupCheck]:
        return list(
            self.db.execute(
                select(RadGroupCheck).where(RadGroupCheck.groupname == groupname).order_by(RadGroupCheck.id)
            ).scalars().all()
        )

    def get_group_reply_attributes(self, groupname: str) -> list[RadGroupReply]:
        return list(
            self.db.execute(
                select(RadGroupReply).where(RadGroupReply.groupname == groupname).order_by(RadGroupReply.id)
            ).scalars().all()
        )

    def get_group(self, groupname: str) -> dict:
        """Group detail: attributes and members.

        Raises:
            NotFoundError: Group does not exist
        """
        self._require_group(groupname)
        return {
            "groupname": groupname,
            "check_attributes": self.get_group_check_attributes(groupname),
            "reply_attributes": self.get_group_reply_attributes(groupname),
            "users": self.get_users_in_group(groupname),
        }

    def create_group(
        self,
        groupname: str,
        check_attributes: Iterable[dict] = (),
        reply_attributes: Iterable[dict] = (),
    ) -> dict:
        """Create a group from its attributes (default op ``:=``).

        A group with no attributes and no members has no rows anywhere, so it
        only becomes visible once something references it.

        Raises:
            ConflictError: Group already exists
        """
        if self.group_exists(groupname):
            raise ConflictError(f"RADIUS group '{groupname}' already exists")

        for item in check_attributes:
            attribute, op, value = _attr_fields(item, ":=")
            self.db.add(RadGroupCheck(groupname=groupname, attribute=attribute, op=op, value=value))
        for item in reply_attributes:
            attribute, op, value = _attr_fields(item, ":=")
            self.db.add(RadGroupReply(groupname=groupname, attribute=attribute, op=op, value=value))
        self.db.flush()

        logger.info(f"Created RADIUS group '{groupname}'")
        return {
            "groupname": groupname,
            "check_attributes": self.get_group_check_attributes(groupname),
            "reply_attributes": self.get_group_reply_attributes(groupname),
            "users": [],
        }

    def update_group(
        self,
        groupname: str,
        check_attributes: Iterable[dict] | None = None,
        reply_attributes: Iterable[dict] | None = None,
    ) -> dict:
        """Upsert group attributes by name.

        Raises:
            NotFoundError: Group does not exist
        """
        self._require_group(groupname)
        for item in check_attributes or ():
            attribute, op, value = _attr_fields(item, ":=")
            self.set_group_check_attribute(groupname, attribute, op, value)
        for item in reply_attributes or ():
            attribute, op, value = _attr_fields(item, ":=")
            self.set_group_reply_attribute(groupname, attribute, op, value)
        return self.get_group(groupname)

    def delete_group(self, groupname: str) -> None:
        """Remove the group's attributes and memberships.

        Raises:
            NotFoundError: Group does not exist
        """
        self._require_group(groupname)
        self.clear_group_attributes(groupname)
        self.db.execute(delete(RadUserGroup).where(RadUserGroup.groupname == groupname))
        self.db.flush()
        logger.info(f"Deleted RADIUS group '{groupname}'")

    def set_group_check_attribute(self, groupname: str, attribute: str, op: str, value: str) -> RadGroupCheck:
        return self._upsert(RadGroupCheck, "groupname", groupname, attribute, op, value)

    def set_group_reply_attribute(self, groupname: str, attribute: str, op: str, value: str) -> RadGroupReply:
        return self._upsert(RadGroupReply, "groupname", groupname, attribute, op, value)

    def remove_group_check_attribute(self, groupname: str, attribute: str) -> bool:
        return self._remove(RadGroupCheck, "groupname", groupname, attribute)

    def remove_group_reply_attribute(self, groupname: str, attribute: str) -> bool:
        return self._remove(RadGroupReply, "groupname", groupname, attribute)

    def clear_group_attributes(self, groupname: str) -> None:
        self.db.execute(delete(RadGroupCheck).where(RadGroupCheck.groupname == groupname))
        self.db.execute(delete(RadGroupReply).where(RadGroupReply.groupname == groupname))
        self.db.flush()

    # ------------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------------

    def add_user_to_group(self, username: str, groupname: str, priority: int = 1) -> RadUserGroup:
        """Add a membership, or update its priority if it already exists.

        Raises:
            NotFoundError: User does not exist
        """
        self._require_user(username)
        membership = self.db.execute(
            select(RadUserGroup).where(
                RadUserGroup.username == username,
                RadUserGroup.groupname == groupname,
            ).limit(1)
        ).scalar_one_or_none()
        if membership is None:
            membership = RadUserGroup(username=username, groupname=groupname, priority=priority)
            self.db.add(membership)
        else:
            membership.priority = priority
        self.db.flush()
        return membership

    def remove_user_from_group(self, username: str, groupname: str) -> None:
        """
        Raises:
            NotFoundError: Membership does not exist
        """
        result = self.db.execute(
            delete(RadUserGroup).where(
                RadUserGroup.username == username,
                RadUserGroup.groupname == groupname,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User '{username}' is not a member of group '{groupname}'")
        self.db.flush()

    def remove_user_from_all_groups(self, username: str) -> int:
        result = self.db.execute(delete(RadUserGroup).where(RadUserGroup.username == username))
        self.db.flush()
        return result.rowcount

    def get_users_in_group(self, groupname: str) -> list[str]:
        return list(
            self.db.execute(
                select(RadUserGroup.username)
                .where(RadUserGroup.groupname == groupname)
                .order_by(RadUserGroup.username)
            ).scalars().all()
        )

    def get_user_groups(self, username: str) -> list[RadUserGroup]:
        """Memberships of a user, by priority."""
        return list(
            self.db.execute(
                select(RadUserGroup)
                .where(RadUserGroup.username == username)
                .order_by(RadUserGroup.priority, RadUserGroup.groupname)
            ).scalars().all()
        )

    # ========================================================================
    # Sessions and CoA
    # ========================================================================

    def _paginate(self, query, page: int, page_size: int) -> tuple[list, int]:
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0
        items = self.db.execute(query.offset((page - 1) * page_size).limit(page_size)).scalars().all()
        return list(items), total

    def get_active_sessions(self, page: int = 1, page_size: int = 10) -> tuple[list[RadAcct], int]:
        """Open sessions (``acctstoptime IS NULL``), newest first."""
        query = (
            select(RadAcct)
            .where(RadAcct.acctstoptime.is_(None))
            .order_by(RadAcct.acctstarttime.desc(), RadAcct.radacctid.desc())
        )
        return self._paginate(query, page, page_size)

    def get_session(self, acct_session_id: str) -> RadAcct:
        """Most recent accounting record for a session id.

        Raises:
            NotFoundError: Unknown session
        """
        session = self.db.execute(
            select(RadAcct)
            .where(RadAcct.acctsessionid == acct_session_id)
            .order_by(RadAcct.radacctid.desc())
            .limit(1)
        ).scalar_one_or_none()
        if session is None:
            raise NotFoundError(f"Session '{acct_session_id}' not found")
        return session

    def get_user_sessions(
        self,
        username: str,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[RadAcct], int]:
        query = (
            select(RadAcct)
            .where(RadAcct.username == username)
            .order_by(RadAcct.acctstarttime.desc(), RadAcct.radacctid.desc())
        )
        return self._paginate(query, page, page_size)

    def get_sessions_by_nas(self, nas_ip: str) -> list[RadAcct]:
        return list(
            self.db.execute(
                select(RadAcct)
                .where(RadAcct.nasipaddress == nas_ip)
                .order_by(RadAcct.acctstarttime.desc())
            ).scalars().all()
        )

    def count_active_sessions(self) -> int:
        return self.db.execute(
            select(func.count(RadAcct.radacctid)).where(RadAcct.acctstoptime.is_(None))
        ).scalar() or 0

    def disconnect_session(self, acct_session_id: str, requested_by: str | None = None) -> CoaRequest:
        """Record a Disconnect-Request for an active session.

        The request is queued as ``pending``; nothing is sent to the NAS here.

        Raises:
            NotFoundError: Unknown session
            ValidationError: Session has already stopped
        """
        session = self.get_session(acct_session_id)
        if session.acctstoptime is not None:
            raise ValidationError(f"Session '{acct_session_id}' is not active")

        request = CoaRequest(
            acct_session_id=session.acctsessionid,
            username=session.username,
            nas_ip=session.nasipaddress,
            request_type="disconnect",
            status="pending",
            request_data={
                "User-Name": session.username,
                "Acct-Session-Id": session.acctsessionid,
                "Framed-IP-Address": session.framedipaddress or None,
            },
            requested_by=requested_by,
        )
        self.db.add(request)
        self.db.flush()

        logger.info(f"📝 Queued disconnect for session {acct_session_id} on NAS {session.nasipaddress}")
        return request

    def send_coa_request(
        self,
        username: str,
        acct_session_id: str,
        nas_ip: str,
        attributes: dict | None = None,
        requested_by: str | None = None,
    ) -> CoaRequest:
        """Record a CoA-Request carrying ``attributes`` for later delivery."""
        request = CoaRequest(
            acct_session_id=acct_session_id,
            username=username,
            nas_ip=nas_ip,
            request_type="coa",
            status="pending",
            request_data={
                "User-Name": username,
                "Acct-Session-Id": acct_session_id,
                "attributes": attributes or {},
            },
            requested_by=requested_by,
        )
        self.db.add(request)
        self.db.flush()

        logger.info(f"📝 Queued CoA for session {acct_session_id} on NAS {nas_ip}")
        return request

    def list_coa_requests(self, page: int = 1, page_size: int = 10) -> tuple[list[CoaRequest], int]:
        query = select(CoaRequest).order_by(CoaRequest.requested_at.desc(), CoaRequest.id.desc())
        return self._paginate(query, page, page_size)

    def get_coa_request(self, request_id: int) -> CoaRequest:
        request = self.db.get(CoaRequest, request_id)
        if request is None:
            raise NotFoundError(f"CoA request {request_id} not found")
        return request

    # ========================================================================
    # Authentication logs
    # ========================================================================

    def get_auth_logs(
        self,
        page: int = 1,
        page_size: int = 10,
        username: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[list[RadPostAuth], int]:
        """Post-auth log entries, newest first."""
        query = select(RadPostAuth)
        if username:
            query = query.where(RadPostAuth.username == username)
        if start:
            query = query.where(RadPostAuth.authdate >= to_naive_utc(start))
        if end:
            query = query.where(RadPostAuth.authdate <= to_naive_utc(end))
        query = query.order_by(RadPostAuth.authdate.desc(), RadPostAuth.id.desc())
        return self._paginate(query, page, page_size)

    # ========================================================================
    # Policy templates
    # ========================================================================

    def list_policy_templates(self) -> list[PolicyTemplate]:
        return list(self.db.execute(select(PolicyTemplate).order_by(PolicyTemplate.name)).scalars().all())

    def get_policy_template(self, template_id: int) -> PolicyTemplate:
        template = self.db.get(PolicyTemplate, template_id)
        if template is None:
            raise NotFoundError(f"Policy template {template_id} not found")
        return template

    def apply_policy_template_to_user(self, template_id: int, username: str) -> PolicyTemplate:
        """Upsert the template's check (``:=``) and reply (``=``) attributes onto a user."""
        template = self.get_policy_template(template_id)
        self._require_user(username)
        for attribute, value in (template.check_attributes or {}).items():
            self.set_user_check_attribute(username, attribute, ":=", str(value))
        for attribute, value in (template.reply_attributes or {}).items():
            self.set_user_reply_attribute(username, attribute, "=", str(value))
        logger.info(f"Applied policy template '{template.name}' to user '{username}'")
        return template

    def apply_policy_template_to_group(self, template_id: int, groupname: str) -> PolicyTemplate:
        """Upsert the template's attributes onto a group."""
        template = self.get_policy_template(template_id)
        self._require_group(groupname)
        for attribute, value in (template.check_attributes or {}).items():
            self.set_group_check_attribute(groupname, attribute, ":=", str(value))
        for attribute, value in (template.reply_attributes or {}).items():
            self.set_group_reply_attribute(groupname, attribute, "=", str(value))
        logger.info(f"Applied policy template '{template.name}' to group '{groupname}'")
        return template

    # ========================================================================
    # Statistics
    # ========================================================================

    def count_users(self) -> int:
        return self.db.execute(select(func.count(func.distinct(RadCheck.username)))).scalar() or 0

    def get_statistics(self) -> dict:
        """Headline counts for RADIUS data."""
        active_users = self.db.execute(
            select(func.count(func.distinct(RadAcct.username))).where(RadAcct.acctstoptime.is_(None))
        ).scalar() or 0
        total_sessions = self.db.execute(select(func.count(RadAcct.radacctid))).scalar() or 0

        return {
            "total_users": self.count_users(),
            "active_users": active_users,
            "total_sessions": total_sessions,
            "active_sessions": self.count_active_sessions(),
            "total_groups": self.count_groups(),
        }

    def get_session_stats_by_nas(self) -> dict[str, int]:
        """Active sessions per NAS IP."""
        rows = self.db.execute(
            select(RadAcct.nasipaddress, func.count(RadAcct.radacctid))
            .where(RadAcct.acctstoptime.is_(None))
            .group_by(RadAcct.nasipaddress)
        ).all()
        return {nas: count for nas, count in rows}

    def get_auth_stats_by_result(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Authentication counts keyed by result.

        ``Access-Accept``/``Access-Reject``/``Access-Challenge`` are reported
        as ``Accept``/``Reject``/``Challenge``; any other reply value is kept
        as-is.
        """
        query = select(RadPostAuth.reply, func.count(RadPostAuth.id)).group_by(RadPostAuth.reply)
        if start:
            query = query.where(RadPostAuth.authdate >= to_naive_utc(start))
        if end:
            query = query.where(RadPostAuth.authdate <= to_naive_utc(end))

        stats = {"Accept": 0, "Reject": 0, "Challenge": 0}
        for reply, count in self.db.execute(query).all():
            label = AUTH_RESULT_LABELS.get(reply, reply)
            stats[label] = stats.get(label, 0) + count
        return stats

    def get_top_users(self, count: int = 10) -> list[dict]:
        """Users with the most sessions."""
        session_count = func.count(RadAcct.radacctid).label("session_count")
        rows = self.db.execute(
            select(
                RadAcct.username,
                session_count,
                func.coalesce(func.sum(RadAcct.acctinputoctets), 0),
                func.coalesce(func.sum(RadAcct.acctoutputoctets), 0),
                func.coalesce(func.sum(RadAcct.acctsessiontime), 0),
                func.max(RadAcct.acctstarttime),
            )
            .group_by(RadAcct.username)
            .order_by(session_count.desc(), RadAcct.username)
            .limit(count)
        ).all()

        return [
            {
                "username": username,
                "session_count": sessions,
                "total_input_octets": int(input_octets),
                "total_output_octets": int(output_octets),
                "total_session_time": int(session_time),
                "last_session": last_session,
            }
            for username, sessions, input_octets, output_octets, session_time, last_session in rows
        ]


def session_duration(session: RadAcct, now: datetime | None = None) -> int:
    """Session length in seconds; running sessions are measured up to ``now``."""
    if session.acctsessiontime:
        return session.acctsessiontime
    if session.acctstarttime is None:
        return 0
    end = session.acctstoptime
    if end is None:
        end = (now or datetime.now(timezone.utc)).replace(tzinfo=None)
    return max(int((end - session.acctstarttime).total_seconds()), 0)
