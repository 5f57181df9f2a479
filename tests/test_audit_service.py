"""Tests for field-level audit diffs and edit log queries."""

from datetime import datetime
from types import SimpleNamespace

from database.models import BroadcastStatus, Feed
from services.audit_service import (
    count_edit_logs,
    diff_bulk,
    diff_changes,
    get_edit_logs,
    record_changes,
    record_phone_change,
    stringify_value,
    summarize_edit_log,
)


def _before(**values):
    defaults = {
        "id": "s1",
        "market_name": "Metropolis",
        "call_letters": "WAAA",
        "broadcast_status": BroadcastStatus.LIVE,
        "is_active": True,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


class TestStringifyValue:
    def test_values(self):
        assert stringify_value(None) == ""
        assert stringify_value(True) == "true"
        assert stringify_value(False) == "false"
        assert stringify_value(Feed.THREE_PM) == "3pm"
        assert stringify_value(12) == "12"
        assert stringify_value(datetime(2024, 10, 22, 15, 30)) == "2024-10-22T15:30:00"


class TestDiffChanges:
    def test_empty_patch(self):
        assert diff_changes(_before(), {}, "u1") == []

    def test_identical_patch(self):
        assert diff_changes(_before(), {"call_letters": "WAAA", "is_active": True}, "u1") == []

    def test_only_changed_fields(self):
        entries = diff_changes(
            _before(),
            {"call_letters": "WBBB", "market_name": "Metropolis", "broadcast_status": None},
            "u1",
        )

        assert [(e.field, e.old_value, e.new_value) for e in entries] == [
            ("call_letters", "WAAA", "WBBB"),
            ("broadcast_status", "live", ""),
        ]
        assert {(e.station_id, e.edited_by) for e in entries} == {("s1", "u1")}

    def test_enum_and_string_compare_equal(self):
        assert diff_changes(_before(), {"broadcast_status": "live"}, "u1") == []

    def test_bulk_fans_out(self):
        stations = [_before(id="s1"), _before(id="s2", call_letters="WBBB"), _before(id="s3")]

        entries = diff_bulk(stations, {"call_letters": "WBBB"}, "u1")

        assert [e.station_id for e in entries] == ["s1", "s3"]


class TestEditLogQueries:
    def test_record_and_query(self, session, admin, make_station):
        station = make_station(call_letters="WAAA")
        other = make_station(market_number=2)

        record_changes(session, diff_changes(station, {"call_letters": "WBBB"}, admin.id))
        record_phone_change(session, other.id, admin.id, "", "Added: Ops - +15551234567")
        session.commit()

        assert count_edit_logs(session) == 2
        assert count_edit_logs(session, station_id=other.id) == 1

        [entry] = get_edit_logs(session, station_id=station.id)
        summary = summarize_edit_log(entry)
        assert summary["station"] == "WAAA"
        assert summary["field"] == "call_letters"
        assert summary["edited_by"] == admin.name

    def test_pagination(self, session, admin, make_station):
        station = make_station()
        for i in range(5):
            record_phone_change(session, station.id, admin.id, "", f"Added: P{i} - +1555000000{i}")
        session.commit()

        assert len(get_edit_logs(session, limit=2)) == 2
        assert len(get_edit_logs(session, limit=2, offset=4)) == 1

    def test_record_nothing(self, session):
        assert record_changes(session, []) == []
        assert count_edit_logs(session) == 0
