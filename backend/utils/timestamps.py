"""Conversion between the store's native datetimes and the ISO strings used in memory.

Only the subscription store calls these at its read/write edges. Calendar
fields (startDate, endDate) are date-only; timestamps (createdAt, deletedAt,
completedAt) keep date and time down to the millisecond, which is the
resolution of a BSON datetime.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

DATE_FIELDS = ("startDate", "endDate")
TIMESTAMP_FIELDS = ("createdAt", "deletedAt")


def now_utc() -> datetime:
    """Current instant truncated to what the store can hold."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_iso_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date from 'YYYY-MM-DD', a full ISO timestamp or a date/datetime.

    Returns None for empty or unparseable input.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00')).date()
    except ValueError:
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp to an aware UTC datetime. Naive input is taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def date_to_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def convert_datetimes_to_iso(data: Any) -> Any:
    """Recursively replace datetimes with ISO strings inside dicts and lists."""
    if isinstance(data, datetime):
        return to_iso_timestamp(data)
    if isinstance(data, list):
        return [convert_datetimes_to_iso(item) for item in data]
    if isinstance(data, dict):
        return {key: convert_datetimes_to_iso(item) for key, item in data.items()}
    return data


def document_to_subscription(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Read edge: store document -> in-memory subscription dict."""
    data = {key: value for key, value in doc.items() if key != "_id"}
    for field in DATE_FIELDS:
        value = data.get(field)
        if isinstance(value, datetime):
            data[field] = value.date().isoformat()
    return convert_datetimes_to_iso(data)


def subscription_to_document(subscription: Dict[str, Any]) -> Dict[str, Any]:
    """Write edge: in-memory subscription dict -> store document.

    Unparseable calendar fields are left as they are; callers that require
    valid dates check them before writing.
    """
    doc = dict(subscription)
    for field in DATE_FIELDS:
        parsed = parse_date(doc.get(field))
        if parsed is not None:
            doc[field] = date_to_datetime(parsed)
    for field in TIMESTAMP_FIELDS:
        if field in doc and doc[field] is not None:
            parsed_ts = parse_timestamp(doc[field])
            if parsed_ts is None:
                logger.warning(f"Dropping unparseable {field}: {doc[field]!r}")
            doc[field] = parsed_ts
    return doc


def document_to_task(doc: Dict[str, Any]) -> Dict[str, Any]:
    data = {key: value for key, value in doc.items() if key != "_id"}
    due = data.get("dueDate")
    if isinstance(due, datetime):
        data["dueDate"] = due.date().isoformat()
    elif due is None:
        data["dueDate"] = ""
    return convert_datetimes_to_iso(data)


def task_to_document(task: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(task)
    due = parse_date(doc.get("dueDate"))
    doc["dueDate"] = date_to_datetime(due) if due else None
    return doc
