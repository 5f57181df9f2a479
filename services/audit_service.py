"""
Audit service for station edits.

Every mutation of a station or its phones is written to edit_logs as one row
per changed field. Column changes are diffed automatically; phone add, remove
and reorder are described by the caller under the synthetic "phones" field.
"""
import enum
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, joinedload
from database.models import EditLog
import logging

logger = logging.getLogger(__name__)

PHONES_FIELD = "phones"


def stringify_value(value: Any) -> str:
    """
    Render a field value the way it is stored in edit_logs.

    Examples:
        stringify_value(None) -> ""
        stringify_value(True) -> "true"
        stringify_value(Feed.THREE_PM) -> "3pm"
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def diff_changes(
    before: Any,
    changes: Mapping[str, Any],
    editor_id: Optional[str],
    station_id: Optional[str] = None,
) -> List[EditLog]:
    """
    Build edit log entries for the fields of `changes` that differ from `before`.

    Only keys present in `changes` are considered. Entries are returned
    unsaved so the caller can add them in the same transaction as the update.

    Args:
        before: Entity holding the current values (read by attribute)
        changes: Partial patch, field name -> proposed value
        editor_id: User making the change
        station_id: Station the entries belong to (defaults to before.id)

    Returns:
        List of EditLog objects, empty when nothing changes
    """
    station_id = station_id or getattr(before, "id", None)
    entries = []

    for field, new_value in changes.items():
        old_text = stringify_value(getattr(before, field))
        new_text = stringify_value(new_value)
        if old_text == new_text:
            continue
        entries.append(
            EditLog(
                station_id=station_id,
                field=field,
                old_value=old_text,
                new_value=new_text,
                edited_by=editor_id,
            )
        )

    return entries


def diff_bulk(
    entities: Iterable[Any],
    changes: Mapping[str, Any],
    editor_id: Optional[str],
) -> List[EditLog]:
    """Apply diff_changes to each entity with the same patch."""
    entries = []
    for entity in entities:
        entries.extend(diff_changes(entity, changes, editor_id))
    return entries


def record_changes(session: Session, entries: List[EditLog]) -> List[EditLog]:
    """Add edit log entries to the session (the caller commits)."""
    if not entries:
        return entries

    session.add_all(entries)
    logger.info(
        "Edit logs recorded",
        extra={
            "count": len(entries),
            "stations": sorted({e.station_id for e in entries if e.station_id}),
            "fields": sorted({e.field for e in entries}),
        },
    )
    return entries


def record_phone_change(
    session: Session,
    station_id: str,
    editor_id: Optional[str],
    old_value: str,
    new_value: str,
) -> EditLog:
    """
    Record a phone add/remove/reorder as a free-text "phones" entry.

    Usage:
        record_phone_change(session, station.id, user.id, "", "Added: Ops - +15551234567")
    """
    entry = EditLog(
        station_id=station_id,
        field=PHONES_FIELD,
        old_value=old_value,
        new_value=new_value,
        edited_by=editor_id,
    )
    record_changes(session, [entry])
    return entry


def get_edit_logs(
    session: Session,
    station_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[EditLog]:
    """
    Get edit logs with pagination, newest first.

    Args:
        session: Database session
        station_id: Only logs for this station
        limit: Maximum number of results
        offset: Pagination offset

    Returns:
        List of EditLog objects with station and editor loaded
    """
    try:
        query = select(EditLog).options(
            joinedload(EditLog.station),
            joinedload(EditLog.editor),
        )

        if station_id:
            query = query.where(EditLog.station_id == station_id)

        query = query.order_by(desc(EditLog.created_at)).limit(limit).offset(offset)

        result = session.execute(query)
        return list(result.scalars().all())

    except Exception as e:
        logger.error(f"Error fetching edit logs: {e}")
        raise


def count_edit_logs(session: Session, station_id: Optional[str] = None) -> int:
    """Count edit logs, optionally for one station."""
    try:
        query = select(func.count(EditLog.id))
        if station_id:
            query = query.where(EditLog.station_id == station_id)
        return session.execute(query).scalar() or 0

    except Exception as e:
        logger.error(f"Error counting edit logs: {e}")
        raise


def summarize_edit_log(entry: EditLog) -> Dict[str, Any]:
    """Flatten an edit log for display or JSON responses."""
    return {
        "id": entry.id,
        "station_id": entry.station_id,
        "station": entry.station.call_letters if entry.station else None,
        "field": entry.field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "edited_by": entry.editor.name if entry.editor else None,
        "created_at": entry.created_at,
    }
