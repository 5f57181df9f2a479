"""
Station service for database operations.
Listing, manual create, single edits and bulk edits, each with an audit trail.
"""
import re
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from database.models import Feed, Role, Station, User
from database.schemas import StationCreate, StationUpdate
from services.audit_service import diff_bulk, diff_changes, record_changes
from services.exceptions import ConcurrencyConflict, NotFoundError, PermissionDenied, ValidationError
import logging

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*([AaPp])?\.?\s*[Mm]?")


def air_time_sort_key(text: Optional[str]) -> int:
    """
    Minutes after midnight for a free-text air time, for sorting only.

    Examples:
        air_time_sort_key("3:00 PM") -> 900
        air_time_sort_key("5:30pm") -> 1050
        air_time_sort_key("TBD") -> 10**6 (sorts last)
    """
    match = _TIME_RE.search(text or "")
    if not match:
        return 10 ** 6

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").lower()

    if hour > 23 or minute > 59:
        return 10 ** 6
    if meridiem == "p" and hour < 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    return hour * 60 + minute


def get_stations(
    session: Session,
    feed: Optional[Feed] = None,
    include_inactive: bool = False,
    sort: str = "market",
) -> List[Station]:
    """
    Get stations with their phones ordered by rank.

    Args:
        session: Database session
        feed: Only stations in this feed
        include_inactive: Include soft-deleted stations
        sort: "market" (market number) or "air_time" (ET air time)

    Returns:
        List of Station objects
    """
    try:
        query = select(Station).options(selectinload(Station.phones))

        if not include_inactive:
            query = query.where(Station.is_active.is_(True))

        if feed:
            query = query.where(Station.feed == Feed(feed))

        query = query.order_by(Station.market_number, Station.feed)

        stations = list(session.execute(query).scalars().all())

        if sort == "air_time":
            stations.sort(key=lambda s: (air_time_sort_key(s.air_time_et), s.market_number))

        return stations

    except Exception as e:
        logger.error(f"Error fetching stations: {e}")
        raise


def get_station_by_id(session: Session, station_id: str) -> Optional[Station]:
    """
    Get station by ID with phones loaded.

    Returns:
        Station object or None if not found
    """
    try:
        query = (
            select(Station)
            .where(Station.id == station_id)
            .options(selectinload(Station.phones))
        )
        return session.execute(query).scalar_one_or_none()

    except Exception as e:
        logger.error(f"Error fetching station {station_id}: {e}")
        raise


def require_station(session: Session, station_id: str) -> Station:
    """Get station by ID or raise NotFoundError."""
    station = get_station_by_id(session, station_id)
    if station is None:
        raise NotFoundError("Station", station_id)
    return station


def require_editor(session: Session, editor_id: Optional[str]) -> Optional[User]:
    """
    Check that a user may edit stations and phones.

    editor_id None is a system actor (command-line import) and is allowed.

    Raises:
        NotFoundError: User does not exist
        PermissionDenied: User is a read-only viewer
    """
    if editor_id is None:
        return None

    user = session.get(User, editor_id)
    if user is None:
        raise NotFoundError("User", editor_id)
    if user.role == Role.VIEWER:
        raise PermissionDenied("Read-only users cannot edit stations")
    return user


def get_station_by_natural_key(
    session: Session, market_number: int, feed: Feed, lock: bool = False
) -> Optional[Station]:
    """Look up a station by (market_number, feed)."""
    query = (
        select(Station)
        .where(Station.market_number == market_number, Station.feed == Feed(feed))
        .options(selectinload(Station.phones))
    )
    if lock:
        query = query.with_for_update(of=Station).execution_options(populate_existing=True)
    return session.execute(query).scalar_one_or_none()


def lock_station(session: Session, station_id: str) -> Station:
    """
    Load a station for writing, holding its row lock until commit/rollback.

    All writes to one station's phones go through this lock, which serializes
    concurrent rank changes on databases that support SELECT ... FOR UPDATE.

    Raises:
        NotFoundError: Station does not exist
    """
    query = (
        select(Station)
        .where(Station.id == station_id)
        .options(selectinload(Station.phones))
        .with_for_update(of=Station)
        .execution_options(populate_existing=True)
    )
    station = session.execute(query).scalar_one_or_none()
    if station is None:
        raise NotFoundError("Station", station_id)
    return station


def _check_natural_key_free(
    session: Session, market_number: int, feed: Feed, station_id: Optional[str] = None
) -> None:
    existing = get_station_by_natural_key(session, market_number, feed)
    if existing is not None and existing.id != station_id:
        raise ValidationError(
            f"Market #{market_number} already exists in the {Feed(feed).value} feed",
            field="feed",
        )


def create_station(
    session: Session,
    data: StationCreate,
    phones: Sequence = (),
    editor_id: Optional[str] = None,
) -> Station:
    """
    Create a station manually, optionally with an initial phone set.

    Args:
        session: Database session
        data: Station fields
        phones: PhoneCandidate objects in rank order
        editor_id: Admin creating the station

    Raises:
        ValidationError: (market_number, feed) is already taken
    """
    from services.phone_rank_service import replace_phones

    try:
        require_editor(session, editor_id)
        _check_natural_key_free(session, data.market_number, data.feed)

        station = Station(**data.model_dump())
        session.add(station)
        replace_phones(session, station, list(phones), editor_id)
        session.commit()

        logger.info(
            f"Created station {station.call_letters} (market #{station.market_number}, "
            f"{station.feed.value}) with {len(station.phones)} phones"
        )
        return station

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Natural key conflict creating station: {e}")
        raise ConcurrencyConflict(
            f"Market #{data.market_number} in the {data.feed.value} feed was created concurrently"
        ) from e
    except Exception:
        session.rollback()
        raise


def update_station(
    session: Session,
    station_id: str,
    changes: StationUpdate,
    editor_id: Optional[str],
) -> Station:
    """
    Apply a partial update to one station and record each changed field.

    Only the fields the caller sent are touched. Nothing is logged for
    fields whose value is unchanged.

    Raises:
        NotFoundError: Station does not exist
        ValidationError: A feed change would collide with another station
        PermissionDenied: Editor is a read-only viewer
    """
    try:
        require_editor(session, editor_id)
        patch = changes.changes()
        station = lock_station(session, station_id)

        if "feed" in patch and Feed(patch["feed"]) != station.feed:
            _check_natural_key_free(session, station.market_number, patch["feed"], station.id)

        entries = diff_changes(station, patch, editor_id)
        for field, value in patch.items():
            setattr(station, field, value)

        record_changes(session, entries)
        session.commit()

        if entries:
            logger.info(
                f"Updated station {station_id}: {', '.join(e.field for e in entries)}"
            )
        return station

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Conflict updating station {station_id}: {e}")
        raise ConcurrencyConflict(f"Station {station_id} could not be updated") from e
    except Exception:
        session.rollback()
        raise


def deactivate_station(session: Session, station_id: str, editor_id: Optional[str]) -> Station:
    """Soft-delete a station; it drops out of the default listing."""
    return update_station(session, station_id, StationUpdate(is_active=False), editor_id)


def bulk_update_stations(
    session: Session,
    station_ids: Sequence[str],
    changes: StationUpdate,
    editor_id: Optional[str],
) -> Dict[str, Any]:
    """
    Apply one patch to many stations in a single transaction.

    Current values are read under lock, diffed and written together, so the
    audit entries describe states that really existed. Each station gets its
    own entries, only for fields whose value differs.

    Returns:
        {"success": True, "updated": station count, "logged": edit log count}

    Raises:
        ValidationError: No stations given, or a feed change would collide with
            another station or with another station in the same batch
        NotFoundError: Any id does not resolve (nothing is written)
    """
    station_ids = list(dict.fromkeys(station_ids))
    if not station_ids:
        raise ValidationError("No stations selected", field="station_ids")

    try:
        require_editor(session, editor_id)
        patch = changes.changes()
        query = (
            select(Station)
            .where(Station.id.in_(station_ids))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        stations = list(session.execute(query).scalars().all())

        found = {s.id for s in stations}
        missing = [sid for sid in station_ids if sid not in found]
        if missing:
            raise NotFoundError("Station", ", ".join(missing))

        if "feed" in patch:
            new_feed = Feed(patch["feed"])
            markets = [s.market_number for s in stations]
            clashing = sorted({m for m in markets if markets.count(m) > 1})
            if clashing:
                labels = ", ".join(f"#{m}" for m in clashing)
                raise ValidationError(
                    f"Markets {labels} would share the {new_feed.value} feed",
                    field="feed",
                )

            for station in stations:
                if new_feed != station.feed:
                    _check_natural_key_free(session, station.market_number, new_feed, station.id)

        entries = diff_bulk(stations, patch, editor_id)
        for station in stations:
            for field, value in patch.items():
                setattr(station, field, value)

        record_changes(session, entries)
        session.commit()

        logger.info(
            f"Bulk updated {len(stations)} stations ({len(entries)} field changes logged)"
        )
        return {"success": True, "updated": len(stations), "logged": len(entries)}

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Conflict during bulk update: {e}")
        raise ConcurrencyConflict("Bulk update rejected by a concurrent change") from e
    except Exception:
        session.rollback()
        raise
