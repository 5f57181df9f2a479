"""
Call log service.

Writes the permanent call log and the same-day call ledger, and annotates
station listings with whether any of a station's phones was called today.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm import Session, joinedload
from database.models import CallLog, Feed, PhoneNumber, RecentCall, Role, Station, User
from services.exceptions import ConcurrencyConflict, InvariantViolation, NotFoundError, PermissionDenied
from services.station_service import get_stations
from utils.formatters import (
    format_broadcast_time,
    format_called_at,
    format_feed,
    format_phone,
    format_status_badge,
    market_timezone,
)
import logging

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def start_of_today(clock: Optional[Clock] = None) -> datetime:
    """Local midnight of the current day according to `clock` (server time by default)."""
    now = (clock or datetime.now)()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class AnnotatedStation:
    """A station plus its derived, non-persistent "called today" state."""

    station: Station
    called_today: bool = False
    called_at: Optional[datetime] = None
    called_number: Optional[str] = field(default=None, repr=False)

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Listing row; `now` anchors the relative "Called ... ago" label."""
        station = self.station
        return {
            "id": station.id,
            "market_number": station.market_number,
            "market_name": station.market_name,
            "call_letters": station.call_letters,
            "feed": station.feed.value,
            "feed_label": format_feed(station.feed),
            "broadcast_status": station.broadcast_status.value if station.broadcast_status else None,
            "status_badge": format_status_badge(station.broadcast_status),
            "timezone": market_timezone(station.market_name),
            "air_time_local": station.air_time_local,
            "air_time_et": station.air_time_et,
            "broadcast_time": format_broadcast_time(station.air_time_local, station.air_time_et),
            "phones": [
                {
                    "id": phone.id,
                    "label": phone.label,
                    "number": phone.number,
                    "display": format_phone(phone.number),
                    "sort_order": phone.sort_order,
                }
                for phone in station.phones
            ],
            "called_today": self.called_today,
            "called_at": self.called_at.isoformat() if self.called_at else None,
            "called_label": format_called_at(self.called_at, now),
        }


def log_call(
    session: Session,
    station_id: str,
    phone_id: str,
    caller_id: str,
    clock: Optional[Clock] = None,
) -> CallLog:
    """
    Record that a producer started a call to one of a station's phones.

    Writes an immutable CallLog row and moves the number's RecentCall entry
    to this call's timestamp. No call is placed.

    Raises:
        NotFoundError: Station, phone or caller does not exist
        InvariantViolation: Phone belongs to a different station
        PermissionDenied: Caller is a read-only viewer
        ConcurrencyConflict: Another call to the same number created its ledger entry first
    """
    try:
        caller = session.get(User, caller_id)
        if caller is None:
            raise NotFoundError("User", caller_id)
        if caller.role == Role.VIEWER:
            raise PermissionDenied("Read-only users cannot log calls")

        if session.get(Station, station_id) is None:
            raise NotFoundError("Station", station_id)

        phone = session.get(PhoneNumber, phone_id)
        if phone is None:
            raise NotFoundError("Phone", phone_id)
        if phone.station_id != station_id:
            raise InvariantViolation(f"Phone {phone_id} does not belong to station {station_id}")

        called_at = (clock or datetime.now)()
        log = CallLog(
            station_id=station_id,
            phone_id=phone.id,
            phone_number=phone.number,
            called_by=caller.id,
            created_at=called_at,
        )
        session.add(log)

        recent = session.execute(
            select(RecentCall).where(RecentCall.number == phone.number)
        ).scalar_one_or_none()
        if recent is None:
            session.add(RecentCall(number=phone.number, called_at=called_at))
        elif recent.called_at is None or recent.called_at < called_at:
            recent.called_at = called_at

        session.commit()

        logger.info(
            "Call logged",
            extra={
                "station_id": station_id,
                "phone_id": phone_id,
                "caller": caller.name,
            },
        )
        return log

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Conflict logging call to phone {phone_id}: {e}")
        raise ConcurrencyConflict(
            f"Call to phone {phone_id} was recorded concurrently, try again"
        ) from e
    except Exception:
        session.rollback()
        raise


def get_called_numbers(session: Session, since: datetime) -> Dict[str, datetime]:
    """
    Build the ledger lookup: canonical number -> last call time at or after `since`.

    A database without the recent_calls table yet is treated as an empty ledger.
    """
    try:
        query = select(RecentCall.number, RecentCall.called_at).where(RecentCall.called_at >= since)
        return {number: called_at for number, called_at in session.execute(query).all()}

    except (OperationalError, ProgrammingError) as e:
        session.rollback()
        logger.warning(f"Recent call ledger not available: {e}")
        return {}


def annotate_stations(
    stations: Iterable[Station],
    called_numbers: Dict[str, datetime],
) -> List[AnnotatedStation]:
    """
    Mark stations with any phone present in the ledger.

    called_at is the time recorded for the first matching phone in rank
    order, which is not necessarily the latest call when several of the
    station's phones were called.
    """
    annotated = []
    for station in stations:
        match = next((p for p in station.phones if p.number in called_numbers), None)
        if match is None:
            annotated.append(AnnotatedStation(station=station))
        else:
            annotated.append(
                AnnotatedStation(
                    station=station,
                    called_today=True,
                    called_at=called_numbers[match.number],
                    called_number=match.number,
                )
            )
    return annotated


def get_stations_with_call_status(
    session: Session,
    feed: Optional[Feed] = None,
    clock: Optional[Clock] = None,
    sort: str = "market",
) -> List[AnnotatedStation]:
    """Active stations annotated with today's call status."""
    called_numbers = get_called_numbers(session, start_of_today(clock))
    stations = get_stations(session, feed=feed, sort=sort)
    return annotate_stations(stations, called_numbers)


def reset_recent_calls(session: Session) -> Dict[str, Any]:
    """
    Clear every "called today" indicator.

    Call logs are untouched. Succeeds on an empty ledger.
    """
    try:
        result = session.execute(delete(RecentCall))
        session.commit()
        logger.info(f"Reset call indicators ({result.rowcount or 0} cleared)")
        return {"success": True}

    except Exception as e:
        session.rollback()
        logger.error(f"Error resetting call indicators: {e}")
        raise


def get_call_logs(
    session: Session,
    caller_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[CallLog]:
    """
    Get call logs with pagination, newest first.

    Args:
        session: Database session
        caller_id: Only calls made by this user (producers see their own)
        limit: Maximum number of results
        offset: Pagination offset

    Returns:
        List of CallLog objects with station and caller loaded
    """
    try:
        query = select(CallLog).options(
            joinedload(CallLog.station),
            joinedload(CallLog.caller),
        )

        if caller_id:
            query = query.where(CallLog.called_by == caller_id)

        query = query.order_by(desc(CallLog.created_at)).limit(limit).offset(offset)

        result = session.execute(query)
        return list(result.scalars().all())

    except Exception as e:
        logger.error(f"Error fetching call logs: {e}")
        raise


def count_call_logs(session: Session, caller_id: Optional[str] = None) -> int:
    """Count call logs, optionally for one caller."""
    try:
        query = select(func.count(CallLog.id))
        if caller_id:
            query = query.where(CallLog.called_by == caller_id)
        return session.execute(query).scalar() or 0

    except Exception as e:
        logger.error(f"Error counting call logs: {e}")
        raise
