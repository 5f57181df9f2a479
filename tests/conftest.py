"""Shared pytest fixtures.

Fixtures:
    - engine: In-memory SQLite engine with the full schema
    - session: Session bound to that engine (expire_on_commit=False, as in production)
    - admin / producer / viewer: Users with each role
    - make_station: Factory for stations with ranked phones
    - phone_ranks: Reads (label, sort_order) pairs straight from the database
    - fixed_clock: 2024-10-22 15:30 local time
"""
from datetime import datetime
from typing import Callable, List, Tuple

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.models import Base, EditLog, Feed, PhoneNumber, Role, Station, User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    session = factory()
    yield session
    session.close()


def _user(session, name: str, role: Role) -> User:
    user = User(name=name, role=role)
    session.add(user)
    session.commit()
    return user


@pytest.fixture
def admin(session) -> User:
    return _user(session, "Dana Admin", Role.ADMIN)


@pytest.fixture
def producer(session) -> User:
    return _user(session, "Pat Producer", Role.PRODUCER)


@pytest.fixture
def viewer(session) -> User:
    return _user(session, "Val Viewer", Role.VIEWER)


@pytest.fixture
def make_station(session) -> Callable[..., Station]:
    """Create a station; phones are (label, number) pairs ranked in order."""

    def _make(
        market_number: int = 1,
        feed: Feed = Feed.THREE_PM,
        phones=(("Ops", "+15551230001"),),
        **fields,
    ) -> Station:
        station = Station(
            market_number=market_number,
            feed=feed,
            market_name=fields.pop("market_name", "Metropolis"),
            call_letters=fields.pop("call_letters", f"W{market_number:03d}"),
            air_time_local=fields.pop("air_time_local", "3:00 PM"),
            air_time_et=fields.pop("air_time_et", "4:00 PM"),
            **fields,
        )
        for rank, (label, number) in enumerate(phones, start=1):
            station.phones.append(PhoneNumber(label=label, number=number, sort_order=rank))
        session.add(station)
        session.commit()
        return station

    return _make


@pytest.fixture
def phone_ranks(session) -> Callable[[str], List[Tuple[str, int]]]:
    def _ranks(station_id: str) -> List[Tuple[str, int]]:
        rows = session.execute(
            select(PhoneNumber.label, PhoneNumber.sort_order)
            .where(PhoneNumber.station_id == station_id)
            .order_by(PhoneNumber.sort_order)
        ).all()
        return [(label, rank) for label, rank in rows]

    return _ranks


@pytest.fixture
def edit_log_count(session) -> Callable[[], int]:
    def _count() -> int:
        return session.execute(select(func.count(EditLog.id))).scalar()

    return _count


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: datetime(2024, 10, 22, 15, 30)
