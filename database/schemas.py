"""
Request payloads for station and phone edits.

Each model is a field whitelist: unknown keys are rejected, and fields the
caller did not send stay out of model_dump(exclude_unset=True), which is what
makes an update partial.
"""
from typing import ClassVar, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from database.models import BroadcastStatus, Feed


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    # Optional fields that may be explicitly cleared with null
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class StationCreate(_Payload):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"broadcast_status"})

    market_number: int = Field(ge=1, le=210)
    market_name: str = Field(min_length=1)
    call_letters: str = Field(min_length=1)
    feed: Feed
    broadcast_status: Optional[BroadcastStatus] = None
    air_time_local: str = ""
    air_time_et: str = ""


class StationUpdate(_Payload):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"broadcast_status"})

    market_name: Optional[str] = Field(default=None, min_length=1)
    call_letters: Optional[str] = Field(default=None, min_length=1)
    feed: Optional[Feed] = None
    broadcast_status: Optional[BroadcastStatus] = None
    air_time_local: Optional[str] = None
    air_time_et: Optional[str] = None
    is_active: Optional[bool] = None


class BulkStationUpdate(_Payload):
    station_ids: List[str]
    updates: StationUpdate


class PhoneCreate(_Payload):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"sort_order"})

    label: str = Field(min_length=1)
    number: str = Field(min_length=7)
    sort_order: Optional[int] = Field(default=None, ge=1, le=4)


class PhoneUpdate(_Payload):
    label: Optional[str] = Field(default=None, min_length=1)
    number: Optional[str] = Field(default=None, min_length=7)
    sort_order: Optional[int] = Field(default=None, ge=1, le=4)


class CallLogCreate(_Payload):
    station_id: str
    phone_id: str


STATION_EDITABLE_FIELDS = tuple(StationUpdate.model_fields)
PHONE_EDITABLE_FIELDS = tuple(PhoneUpdate.model_fields)
