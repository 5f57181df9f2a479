"""
Database models for the station call list.

Stations own their phone numbers. Call and edit logs reference stations,
phones and users by id but never cascade with them: audit rows are
append-only and outlive whatever they describe.
"""
import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Feed(str, enum.Enum):
    """Scheduled broadcast window a station reports into."""

    THREE_PM = "3pm"
    FIVE_PM = "5pm"
    SIX_PM = "6pm"


class BroadcastStatus(str, enum.Enum):
    LIVE = "live"
    RERACK = "rerack"
    MIGHT = "might"


class Role(str, enum.Enum):
    PRODUCER = "producer"
    ADMIN = "admin"
    VIEWER = "viewer"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=Role.PRODUCER,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self) -> str:
        return f"<User {self.name} ({self.role.value})>"


class Station(Base):
    """
    A broadcast station in one feed.

    (market_number, feed) is the natural key used to match feed rows;
    id is the surrogate key used everywhere else.
    """

    __tablename__ = "stations"
    __table_args__ = (
        UniqueConstraint("market_number", "feed", name="uq_stations_market_number_feed"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    market_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    market_name: Mapped[str] = mapped_column(String(200), nullable=False)
    call_letters: Mapped[str] = mapped_column(String(50), nullable=False)
    feed: Mapped[Feed] = mapped_column(
        Enum(Feed, name="station_feed", values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    broadcast_status: Mapped[Optional[BroadcastStatus]] = mapped_column(
        Enum(BroadcastStatus, name="broadcast_status", values_callable=_enum_values),
        nullable=True,
    )
    air_time_local: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    air_time_et: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, onupdate=datetime.now
    )

    phones: Mapped[List["PhoneNumber"]] = relationship(
        back_populates="station",
        cascade="all, delete-orphan",
        order_by="PhoneNumber.sort_order",
    )

    @property
    def primary_phone(self) -> Optional["PhoneNumber"]:
        return next((p for p in self.phones if p.sort_order == 1), None)

    def __repr__(self) -> str:
        return f"<Station #{self.market_number} {self.call_letters} ({self.feed.value})>"


class PhoneNumber(Base):
    """Ranked contact for a station. sort_order 1 is the primary contact."""

    __tablename__ = "phone_numbers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    station_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    station: Mapped[Station] = relationship(back_populates="phones")

    def __repr__(self) -> str:
        return f"<PhoneNumber {self.label} {self.number} #{self.sort_order}>"


class CallLog(Base):
    """Permanent record of a producer initiating a call."""

    __tablename__ = "call_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    station_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("stations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    phone_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("phone_numbers.id", ondelete="SET NULL"), nullable=True
    )
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    called_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, index=True
    )

    station: Mapped[Optional[Station]] = relationship()
    caller: Mapped[Optional[User]] = relationship()


class RecentCall(Base):
    """Latest call per canonical number; cleared by the daily reset."""

    __tablename__ = "recent_calls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    called_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


class EditLog(Base):
    """One changed field of one station, as stringified before/after values."""

    __tablename__ = "edit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    station_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("stations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    field: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    new_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    edited_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.now, index=True
    )

    station: Mapped[Optional[Station]] = relationship()
    editor: Mapped[Optional[User]] = relationship()


__all__ = [
    "Base",
    "Feed",
    "BroadcastStatus",
    "Role",
    "User",
    "Station",
    "PhoneNumber",
    "CallLog",
    "RecentCall",
    "EditLog",
]
