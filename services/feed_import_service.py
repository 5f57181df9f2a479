"""
Feed import service.

Merges a station feed (CSV rows) into the directory. Each row is matched on
its natural key (market_number, feed): a match is updated and gets its phone
set replaced, anything else is created. Rows succeed or fail independently;
a bad row is reported and the import moves on.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from components.directory.csv_parser import PHONE_COLUMN_PAIRS, FeedSource, parse_feed_rows
from components.directory.phone_validator import normalize_phone
from config.settings import settings
from database.models import BroadcastStatus, Feed, Station
from services.audit_service import diff_changes, record_changes
from services.exceptions import ConcurrencyConflict, ValidationError
from services.phone_rank_service import PhoneCandidate, replace_phones
from services.station_service import get_station_by_natural_key, require_editor
import logging

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class ImportResult:
    """Counts and row errors for one feed import."""

    created: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_response(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Response shape for callers; only the first `limit` errors are listed.

        Returns:
            {"success": True, "created", "updated", "errors", "error_count"}
        """
        if limit is None:
            limit = settings.IMPORT_ERROR_PREVIEW_LIMIT
        return {
            "success": True,
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors[:limit],
            "error_count": self.error_count,
        }


def normalize_feed(value: Optional[str]) -> Feed:
    """
    Map a feed cell to a Feed, leniently.

    Checks for "3", then "5", then "6" anywhere in the text; anything else
    falls back to the configured default feed (6pm).

    Examples:
        normalize_feed("3") -> Feed.THREE_PM
        normalize_feed("5 PM") -> Feed.FIVE_PM
        normalize_feed("late") -> Feed.SIX_PM
    """
    cleaned = (value or "").strip().lower()
    if "3" in cleaned:
        return Feed.THREE_PM
    if "5" in cleaned:
        return Feed.FIVE_PM
    if "6" in cleaned:
        return Feed.SIX_PM
    return Feed(settings.DEFAULT_FEED)


def normalize_status(value: Optional[str]) -> Optional[BroadcastStatus]:
    """live/rerack/might in any case; anything else means no status."""
    cleaned = (value or "").strip().lower()
    try:
        return BroadcastStatus(cleaned)
    except ValueError:
        return None


def parse_market_number(value: Optional[str]) -> int:
    """
    Read the leading integer of a rank cell ("12", " 12 ", "12th").

    Raises:
        ValidationError: No leading integer, or outside the market range
    """
    match = _LEADING_INT_RE.match(value or "")
    if not match:
        raise ValidationError(f"Invalid market number: {value}", field="Rank")

    number = int(match.group(1))
    if not settings.MIN_MARKET_NUMBER <= number <= settings.MAX_MARKET_NUMBER:
        raise ValidationError(
            f"Market number out of range "
            f"({settings.MIN_MARKET_NUMBER}-{settings.MAX_MARKET_NUMBER}): {value}",
            field="Rank",
        )
    return number


def build_phone_candidates(row: Mapping[str, str]) -> List[PhoneCandidate]:
    """
    Collect contacts from the four (name, phone) column pairs, in rank order.

    A pair counts only when the name is present and the phone normalizes;
    other pairs are dropped silently.
    """
    candidates = []
    for name_column, phone_column in PHONE_COLUMN_PAIRS:
        label = (row.get(name_column) or "").strip()
        raw = (row.get(phone_column) or "").strip()
        if not label or not raw:
            continue

        number = normalize_phone(raw)
        if number is None:
            logger.debug(f"Dropping unparseable phone {raw!r} for {label!r}")
            continue

        candidates.append(PhoneCandidate(label=label, number=number))
    return candidates


def _station_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "market_name": (row.get("City") or "").strip(),
        "call_letters": (row.get("Station") or "").strip(),
        "broadcast_status": normalize_status(row.get("Status")),
        "air_time_local": (row.get("Air Time") or "").strip(),
        "air_time_et": (row.get("ET Time") or "").strip(),
    }


def import_row(
    session: Session,
    row: Mapping[str, str],
    editor_id: Optional[str] = None,
) -> bool:
    """
    Create or update the station for one feed row. Does not commit.

    Returns:
        True if a station was created, False if an existing one was updated
    """
    feed = normalize_feed(row.get("Feed"))
    market_number = parse_market_number(row.get("Rank"))
    fields = _station_fields(row)
    candidates = build_phone_candidates(row)

    if not fields["call_letters"] or not fields["market_name"]:
        logger.warning(
            f"Feed row for market #{market_number} ({feed.value}) has a blank Station or City"
        )

    if not candidates:
        logger.warning(
            f"Feed row for market #{market_number} ({feed.value}) has no usable phones"
        )

    existing = get_station_by_natural_key(session, market_number, feed, lock=True)

    if existing is not None:
        entries = diff_changes(existing, fields, editor_id)
        for name, value in fields.items():
            setattr(existing, name, value)
        record_changes(session, entries)
        replace_phones(session, existing, candidates, editor_id)
        return False

    station = Station(market_number=market_number, feed=feed, **fields)
    session.add(station)
    replace_phones(session, station, candidates, editor_id)
    session.flush()
    return True


def import_feed(
    session: Session,
    rows: Sequence[Mapping[str, str]],
    editor_id: Optional[str] = None,
) -> ImportResult:
    """
    Import parsed feed rows.

    Each row is committed on its own, so a failing row is rolled back and
    recorded without undoing the rows before it.

    Args:
        session: Database session
        rows: Header-keyed rows (see components.directory.csv_parser)
        editor_id: Admin running the import, recorded on audit entries

    Returns:
        ImportResult with created/updated counts and row error messages
    """
    require_editor(session, editor_id)
    result = ImportResult()

    for index, row in enumerate(rows, start=1):
        label = (row.get("Station") or "").strip() or "?"
        try:
            created = import_row(session, row, editor_id)
            session.commit()
            if created:
                result.created += 1
            else:
                result.updated += 1

        except IntegrityError as e:
            session.rollback()
            conflict = ConcurrencyConflict(
                f"market #{row.get('Rank')} ({row.get('Feed')}) was written concurrently"
            )
            logger.error(f"Feed row {index} conflict: {e}")
            result.errors.append(f"Row {index} ({label}): {conflict}")

        except Exception as e:
            session.rollback()
            logger.warning(f"Feed row {index} skipped: {e}")
            result.errors.append(f"Row {index} ({label}): {e}")

    logger.info(
        f"Feed import finished: {result.created} created, {result.updated} updated, "
        f"{result.error_count} errors"
    )
    return result


def import_feed_csv(
    session: Session,
    source: FeedSource,
    editor_id: Optional[str] = None,
) -> ImportResult:
    """
    Parse a feed CSV and import it.

    Raises:
        ValidationError: The file is empty or lacks required columns
        PermissionDenied: Editor is a read-only viewer
    """
    try:
        rows = parse_feed_rows(source)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    return import_feed(session, rows, editor_id)
