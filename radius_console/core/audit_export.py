"""Audit log export to CSV, JSON and XML."""

import csv
import io
import json
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

EXPORT_FORMATS = {
    "csv": "text/csv",
    "json": "application/json",
    "xml": "application/xml",
}

CSV_HEADER = [
    "Id",
    "Timestamp",
    "ActorId",
    "ActorUsername",
    "Action",
    "Entity",
    "EntityId",
    "BeforeData",
    "AfterData",
    "IpAddress",
    "UserAgent",
]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Export row key for each CSV/XML column
_FIELDS = {
    "Id": "id",
    "Timestamp": "timestamp",
    "ActorId": "actor_id",
    "ActorUsername": "actor_username",
    "Action": "action",
    "Entity": "entity",
    "EntityId": "entity_id",
    "BeforeData": "before_data",
    "AfterData": "after_data",
    "IpAddress": "ip_address",
    "UserAgent": "user_agent",
}


def _compact_json(data) -> str:
    if data is None:
        return ""
    return json.dumps(data, separators=(",", ":"), default=str)


def _format_timestamp(value: datetime | None) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def _cell(entry: dict, column: str) -> str:
    value = entry.get(_FIELDS[column])
    if column == "Timestamp":
        return _format_timestamp(value)
    if column in ("BeforeData", "AfterData"):
        return _compact_json(value)
    return "" if value is None else str(value)


def to_csv(entries: list[dict]) -> str:
    """Render entries as CSV with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for entry in entries:
        writer.writerow([_cell(entry, column) for column in CSV_HEADER])
    return buffer.getvalue()


def to_json(entries: list[dict]) -> str:
    """Render entries as an indented JSON array."""
    return json.dumps(
        [
            {
                **entry,
                "timestamp": entry["timestamp"].isoformat() if entry.get("timestamp") else None,
            }
            for entry in entries
        ],
        indent=2,
        default=str,
    )


def to_xml(entries: list[dict]) -> str:
    """Render entries as ``<AuditLogs><AuditLog>...</AuditLog></AuditLogs>``."""
    root = ET.Element("AuditLogs")
    for entry in entries:
        node = ET.SubElement(root, "AuditLog")
        for column in CSV_HEADER:
            ET.SubElement(node, column).text = _cell(entry, column)
    return ET.tostring(root, encoding="unicode", xml_declaration=True)


def render(entries: list[dict], fmt: str) -> str:
    """Render entries in ``fmt`` (csv, json or xml)."""
    if fmt == "csv":
        return to_csv(entries)
    if fmt == "json":
        return to_json(entries)
    if fmt == "xml":
        return to_xml(entries)
    raise ValueError(f"Unsupported export format: {fmt}")


def export_filename(fmt: str, now: datetime | None = None) -> str:
    """``audit_logs_YYYYmmdd_HHMMSS.<fmt>``"""
    now = now or datetime.now(timezone.utc)
    return f"audit_logs_{now.strftime('%Y%m%d_%H%M%S')}.{fmt}"
