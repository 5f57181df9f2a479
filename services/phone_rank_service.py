"""
Phone rank service.

Keeps each station's phone ranks (sort_order) exactly 1..n while phones are
added, edited, removed, promoted to primary or replaced by a feed import.

The *_plan helpers are pure: they take objects with `id` and `sort_order`
and return {phone_id: new_sort_order} for the phones whose rank changes.
The session-level operations lock the station row, apply a plan, write the
audit entry and commit as one transaction.
"""
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from components.directory.phone_validator import normalize_phone
from config.settings import settings
from database.models import PhoneNumber, Station
from database.schemas import PhoneCreate, PhoneUpdate
from services.audit_service import record_phone_change
from services.exceptions import (
    ConcurrencyConflict,
    DirectoryError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from services.station_service import lock_station, require_editor
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhoneCandidate:
    """A contact from a feed row, already normalized."""

    label: str
    number: str


# ====================
# Pure rank planning
# ====================

def _by_rank(phones: Iterable) -> list:
    return sorted(phones, key=lambda p: p.sort_order)


def is_contiguous(ranks: Iterable[int]) -> bool:
    """True when ranks are exactly 1..n with no gaps or duplicates."""
    ranks = sorted(ranks)
    return ranks == list(range(1, len(ranks) + 1))


def next_sort_order(phones: Iterable) -> int:
    """Rank for a phone appended after the existing ones."""
    return max((p.sort_order for p in phones), default=0) + 1


def compaction_plan(phones: Iterable) -> Dict[str, int]:
    """Renumber phones 1..n keeping their relative order."""
    return {
        phone.id: rank
        for rank, phone in enumerate(_by_rank(phones), start=1)
        if phone.sort_order != rank
    }


def insertion_plan(phones: Iterable, phone_id: str, position: int) -> Dict[str, int]:
    """
    Move one phone to `position`; every other phone keeps its relative order.

    `phones` must include the moving phone. Position is clamped to 1..n.
    """
    phones = list(phones)
    moving = next((p for p in phones if p.id == phone_id), None)
    if moving is None:
        raise InvariantViolation(f"Phone {phone_id} is not part of this station")

    ordered = [p for p in _by_rank(phones) if p.id != phone_id]
    position = max(1, min(position, len(ordered) + 1))
    ordered.insert(position - 1, moving)

    return {
        phone.id: rank
        for rank, phone in enumerate(ordered, start=1)
        if phone.sort_order != rank
    }


def promotion_plan(phones: Iterable, phone_id: str) -> Dict[str, int]:
    """
    Make one phone primary with a single-element insertion.

    Phones ranked ahead of the target move down by one; phones ranked after
    it keep their rank. Requires contiguous ranks.

    Examples:
        [A:1, B:2, C:3], promote C -> {C: 1, A: 2, B: 3}
        [A:1, B:2, C:3, D:4], promote B -> {B: 1, A: 2}  (C and D untouched)
    """
    phones = list(phones)
    target = next((p for p in phones if p.id == phone_id), None)
    if target is None:
        raise InvariantViolation(f"Phone {phone_id} is not part of this station")

    old_rank = target.sort_order
    if old_rank == 1:
        return {}

    plan = {target.id: 1}
    for phone in phones:
        if phone.id != target.id and phone.sort_order < old_rank:
            plan[phone.id] = phone.sort_order + 1
    return plan


def _apply_plan(phones: Iterable[PhoneNumber], plan: Dict[str, int]) -> None:
    for phone in phones:
        if phone.id in plan:
            phone.sort_order = plan[phone.id]


def _resort(station: Station) -> None:
    station.phones.sort(key=lambda p: p.sort_order)


def _describe(phone: PhoneNumber) -> str:
    return f"{phone.label}: {phone.number}"


# ====================
# Session operations
# ====================

def _find_phone(session: Session, station: Station, phone_id: str) -> PhoneNumber:
    phone = next((p for p in station.phones if p.id == phone_id), None)
    if phone is not None:
        return phone

    if session.get(PhoneNumber, phone_id) is not None:
        raise InvariantViolation(f"Phone {phone_id} does not belong to station {station.id}")
    raise NotFoundError("Phone", phone_id)


def _normalize_or_reject(raw: str) -> str:
    number = normalize_phone(raw)
    if number is None:
        raise ValidationError(f"Invalid phone number: {raw}", field="number")
    return number


def _compact(station: Station) -> None:
    """Restore contiguous ranks before a rank-dependent operation."""
    plan = compaction_plan(station.phones)
    if plan:
        logger.warning(f"Compacting non-contiguous phone ranks for station {station.id}: {plan}")
        _apply_plan(station.phones, plan)
        _resort(station)


def _fail(session: Session, action: str, error: Exception):
    session.rollback()
    if isinstance(error, IntegrityError):
        logger.error(f"Conflict while trying to {action}: {error}")
        raise ConcurrencyConflict(f"Concurrent update rejected while trying to {action}") from error
    if not isinstance(error, DirectoryError):
        logger.error(f"Failed to {action}: {error}")
    raise error


def add_phone(
    session: Session,
    station_id: str,
    data: PhoneCreate,
    editor_id: Optional[str],
) -> PhoneNumber:
    """
    Add a phone to a station.

    Without an explicit sort_order the phone is appended after the last one.
    An explicit sort_order inserts it there and shifts later phones down.

    Raises:
        NotFoundError: Station does not exist
        InvariantViolation: Station already has the maximum number of phones
        ValidationError: Number cannot be normalized
        PermissionDenied: Editor is a read-only viewer
    """
    try:
        require_editor(session, editor_id)
        station = lock_station(session, station_id)
        max_phones = settings.MAX_PHONES_PER_STATION

        if len(station.phones) >= max_phones:
            raise InvariantViolation(f"Maximum {max_phones} phone numbers allowed")

        number = _normalize_or_reject(data.number)
        _compact(station)

        phone = PhoneNumber(
            id=str(uuid.uuid4()),
            label=data.label,
            number=number,
            sort_order=0,
        )
        position = data.sort_order or next_sort_order(station.phones)
        plan = insertion_plan(list(station.phones) + [phone], phone.id, position)
        _apply_plan(list(station.phones) + [phone], plan)

        station.phones.append(phone)
        _resort(station)

        record_phone_change(
            session, station.id, editor_id, "", f"Added: {data.label} - {number}"
        )
        session.commit()

        logger.info(f"Added phone {phone.id} to station {station.id} at rank {phone.sort_order}")
        return phone

    except Exception as e:
        _fail(session, f"add phone to station {station_id}", e)


def update_phone(
    session: Session,
    station_id: str,
    phone_id: str,
    data: PhoneUpdate,
    editor_id: Optional[str],
) -> PhoneNumber:
    """
    Apply a partial edit (label, number, sort_order) to one phone.

    A sort_order change moves the phone and renumbers the others so ranks
    stay contiguous. One "phones" audit entry lists what changed.
    """
    try:
        require_editor(session, editor_id)
        station = lock_station(session, station_id)
        phone = _find_phone(session, station, phone_id)
        changes = data.changes()
        before = _describe(phone)
        described = []

        if "label" in changes and changes["label"] != phone.label:
            described.append(f"label: {phone.label} → {changes['label']}")
            phone.label = changes["label"]

        if "number" in changes:
            number = _normalize_or_reject(changes["number"])
            if number != phone.number:
                described.append(f"number: {phone.number} → {number}")
                phone.number = number

        if "sort_order" in changes:
            _compact(station)
            old_rank = phone.sort_order
            plan = insertion_plan(station.phones, phone.id, changes["sort_order"])
            _apply_plan(station.phones, plan)
            _resort(station)
            if phone.sort_order != old_rank:
                described.append(f"sort_order: {old_rank} → {phone.sort_order}")

        if described:
            record_phone_change(session, station.id, editor_id, before, ", ".join(described))

        session.commit()

        if described:
            logger.info(f"Updated phone {phone.id} on station {station.id}: {', '.join(described)}")
        return phone

    except Exception as e:
        _fail(session, f"update phone {phone_id}", e)


def remove_phone(
    session: Session,
    station_id: str,
    phone_id: str,
    editor_id: Optional[str],
) -> None:
    """
    Delete a phone and renumber the remaining ones.

    Raises:
        InvariantViolation: The phone is the station's last one
    """
    try:
        require_editor(session, editor_id)
        station = lock_station(session, station_id)
        phone = _find_phone(session, station, phone_id)

        if len(station.phones) <= 1:
            raise InvariantViolation("At least one phone number is required")

        station.phones.remove(phone)
        _apply_plan(station.phones, compaction_plan(station.phones))
        _resort(station)

        record_phone_change(session, station.id, editor_id, _describe(phone), "Deleted")
        session.commit()

        logger.info(f"Removed phone {phone_id} from station {station.id}")

    except Exception as e:
        _fail(session, f"remove phone {phone_id}", e)


def make_primary(
    session: Session,
    station_id: str,
    phone_id: str,
    editor_id: Optional[str],
) -> Station:
    """
    Promote a phone to rank 1.

    A phone that is already primary is left alone and no audit entry is
    written, so repeating the call is harmless.
    """
    try:
        require_editor(session, editor_id)
        station = lock_station(session, station_id)
        target = _find_phone(session, station, phone_id)
        _compact(station)

        if target.sort_order == 1:
            session.commit()
            return station

        current_primary = station.primary_phone
        plan = promotion_plan(station.phones, target.id)
        _apply_plan(station.phones, plan)
        _resort(station)

        old_value = (
            f"Primary: {current_primary.label} (sortOrder: 1)"
            if current_primary
            else "No primary phone"
        )
        record_phone_change(
            session, station.id, editor_id, old_value, f"Primary: {target.label} (sortOrder: 1)"
        )
        session.commit()

        logger.info(f"Phone {target.id} is now primary for station {station.id} ({len(plan)} rows moved)")
        return station

    except Exception as e:
        _fail(session, f"set primary phone {phone_id}", e)


def replace_phones(
    session: Session,
    station: Station,
    candidates: Sequence[PhoneCandidate],
    editor_id: Optional[str] = None,
) -> bool:
    """
    Replace a station's whole phone set (feed import path).

    Existing phone rows are deleted and the candidates recreated with ranks
    1..k in the order given. Does not commit. An empty candidate list leaves
    the station without phones.

    Returns:
        True if the labels/numbers differ from what the station had
    """
    max_phones = settings.MAX_PHONES_PER_STATION
    if len(candidates) > max_phones:
        raise InvariantViolation(f"Maximum {max_phones} phone numbers allowed")

    previous: List[PhoneNumber] = _by_rank(station.phones)
    old_signature = [(p.label, p.number) for p in previous]
    new_signature = [(c.label, c.number) for c in candidates]
    old_description = "; ".join(_describe(p) for p in previous)
    state = inspect(station)
    is_new = state.transient or state.pending

    station.phones.clear()
    session.flush()

    for rank, candidate in enumerate(candidates, start=1):
        station.phones.append(
            PhoneNumber(label=candidate.label, number=candidate.number, sort_order=rank)
        )

    changed = old_signature != new_signature
    if changed and not is_new:
        record_phone_change(
            session,
            station.id,
            editor_id,
            old_description,
            "; ".join(f"{c.label}: {c.number}" for c in candidates) or "No phones",
        )
    return changed
