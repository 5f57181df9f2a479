"""Tests for station listing, creation and single/bulk edits."""

import pytest
from sqlalchemy import select

from database.models import BroadcastStatus, EditLog, Feed, Station
from database.schemas import StationCreate, StationUpdate
from services.exceptions import NotFoundError, PermissionDenied, ValidationError
from services.phone_rank_service import PhoneCandidate
from services.station_service import (
    air_time_sort_key,
    bulk_update_stations,
    create_station,
    deactivate_station,
    get_station_by_id,
    get_stations,
    require_editor,
    require_station,
    update_station,
)


def _edits(session, station_id=None):
    query = select(EditLog.field, EditLog.old_value, EditLog.new_value)
    if station_id:
        query = query.where(EditLog.station_id == station_id)
    return sorted(session.execute(query).all())


class TestAirTimeSortKey:
    @pytest.mark.parametrize(
        "text, minutes",
        [
            ("3:00 PM", 900),
            ("5:30pm", 1050),
            ("12:00 AM", 0),
            ("12:15 PM", 735),
            ("17:45", 1065),
            ("9 am", 540),
        ],
    )
    def test_parsed(self, text, minutes):
        assert air_time_sort_key(text) == minutes

    @pytest.mark.parametrize("text", ["TBD", "", None, "25:00"])
    def test_unparseable_sorts_last(self, text):
        assert air_time_sort_key(text) == 10 ** 6


class TestGetStations:
    def test_orders_by_market_and_filters_feed(self, session, make_station):
        make_station(market_number=3)
        make_station(market_number=1)
        make_station(market_number=2, feed=Feed.SIX_PM)

        assert [s.market_number for s in get_stations(session)] == [1, 2, 3]
        assert [s.market_number for s in get_stations(session, feed=Feed.THREE_PM)] == [1, 3]

    def test_hides_inactive(self, session, make_station):
        make_station(market_number=1)
        make_station(market_number=2, is_active=False)

        assert [s.market_number for s in get_stations(session)] == [1]
        assert len(get_stations(session, include_inactive=True)) == 2

    def test_sort_by_air_time(self, session, make_station):
        make_station(market_number=1, air_time_et="6:00 PM")
        make_station(market_number=2, air_time_et="TBD")
        make_station(market_number=3, air_time_et="4:30 PM")

        stations = get_stations(session, sort="air_time")

        assert [s.market_number for s in stations] == [3, 1, 2]

    def test_phones_in_rank_order(self, session, make_station):
        make_station(phones=(("A", "+15551230001"), ("B", "+15551230002")))

        station = get_stations(session)[0]

        assert [p.sort_order for p in station.phones] == [1, 2]
        assert station.primary_phone.label == "A"


class TestLookups:
    def test_get_station_by_id(self, session, make_station):
        station = make_station()
        assert get_station_by_id(session, station.id).id == station.id
        assert get_station_by_id(session, "missing") is None

    def test_require_station(self, session):
        with pytest.raises(NotFoundError, match="Station not found: missing"):
            require_station(session, "missing")

    def test_require_editor(self, session, admin, viewer):
        assert require_editor(session, None) is None
        assert require_editor(session, admin.id) is admin
        with pytest.raises(PermissionDenied):
            require_editor(session, viewer.id)
        with pytest.raises(NotFoundError):
            require_editor(session, "nobody")


class TestCreateStation:
    def test_with_phones(self, session, admin, phone_ranks, edit_log_count):
        data = StationCreate(
            market_number=7,
            market_name="Springfield, IL",
            call_letters="WSPR",
            feed=Feed.FIVE_PM,
            broadcast_status=BroadcastStatus.LIVE,
        )

        station = create_station(
            session,
            data,
            [PhoneCandidate("Desk", "+15550001111"), PhoneCandidate("Ops", "+15550002222")],
            admin.id,
        )

        assert station.id
        assert phone_ranks(station.id) == [("Desk", 1), ("Ops", 2)]
        assert edit_log_count() == 0

    def test_natural_key_taken(self, session, admin, make_station):
        make_station(market_number=7, feed=Feed.FIVE_PM)
        data = StationCreate(market_number=7, market_name="X", call_letters="WXXX", feed=Feed.FIVE_PM)

        with pytest.raises(ValidationError, match="already exists"):
            create_station(session, data, editor_id=admin.id)


class TestUpdateStation:
    def test_logs_only_changed_fields(self, session, producer, make_station):
        station = make_station(market_name="Metropolis", call_letters="WAAA")

        update_station(
            session,
            station.id,
            StationUpdate(market_name="Metropolis", call_letters="WBBB", broadcast_status="rerack"),
            producer.id,
        )

        assert _edits(session) == [
            ("broadcast_status", "", "rerack"),
            ("call_letters", "WAAA", "WBBB"),
        ]
        assert session.get(Station, station.id).call_letters == "WBBB"

    def test_empty_patch_logs_nothing(self, session, producer, make_station, edit_log_count):
        station = make_station()

        update_station(session, station.id, StationUpdate(), producer.id)

        assert edit_log_count() == 0

    def test_clear_status(self, session, producer, make_station):
        station = make_station(broadcast_status=BroadcastStatus.LIVE)

        update_station(session, station.id, StationUpdate(broadcast_status=None), producer.id)

        assert session.get(Station, station.id).broadcast_status is None
        assert _edits(session) == [("broadcast_status", "live", "")]

    def test_feed_change_collision(self, session, producer, make_station, edit_log_count):
        make_station(market_number=4, feed=Feed.SIX_PM)
        station = make_station(market_number=4, feed=Feed.THREE_PM)

        with pytest.raises(ValidationError):
            update_station(session, station.id, StationUpdate(feed=Feed.SIX_PM), producer.id)

        assert edit_log_count() == 0

    def test_viewer_cannot_edit(self, session, viewer, make_station, edit_log_count):
        station = make_station(call_letters="WAAA")

        with pytest.raises(PermissionDenied):
            update_station(session, station.id, StationUpdate(call_letters="WZZZ"), viewer.id)

        assert session.get(Station, station.id).call_letters == "WAAA"
        assert edit_log_count() == 0

    def test_unknown_station(self, session, producer):
        with pytest.raises(NotFoundError):
            update_station(session, "missing", StationUpdate(call_letters="WZZZ"), producer.id)

    def test_deactivate(self, session, admin, make_station):
        station = make_station()

        deactivate_station(session, station.id, admin.id)

        assert get_stations(session) == []
        assert _edits(session) == [("is_active", "true", "false")]


class TestBulkUpdate:
    def test_fans_out_per_station_and_field(self, session, admin, make_station):
        first = make_station(market_number=1, broadcast_status=BroadcastStatus.LIVE)
        second = make_station(market_number=2, broadcast_status=BroadcastStatus.MIGHT)
        third = make_station(market_number=3, broadcast_status=BroadcastStatus.RERACK)

        result = bulk_update_stations(
            session,
            [first.id, second.id, third.id],
            StationUpdate(broadcast_status="rerack", air_time_et="4:00 PM"),
            admin.id,
        )

        assert result == {"success": True, "updated": 3, "logged": 2}
        assert _edits(session, first.id) == [("broadcast_status", "live", "rerack")]
        assert _edits(session, second.id) == [("broadcast_status", "might", "rerack")]
        assert _edits(session, third.id) == []

    def test_unknown_id_changes_nothing(self, session, admin, make_station, edit_log_count):
        station = make_station(call_letters="WAAA")

        with pytest.raises(NotFoundError):
            bulk_update_stations(
                session, [station.id, "missing"], StationUpdate(call_letters="WZZZ"), admin.id
            )

        session.expire_all()
        assert session.get(Station, station.id).call_letters == "WAAA"
        assert edit_log_count() == 0

    def test_feed_change_collision_within_batch(self, session, admin, make_station, edit_log_count):
        three = make_station(market_number=5, feed=Feed.THREE_PM)
        five = make_station(market_number=5, feed=Feed.FIVE_PM)
        other = make_station(market_number=6, feed=Feed.FIVE_PM)

        with pytest.raises(ValidationError, match="#5 would share the 6pm feed") as excinfo:
            bulk_update_stations(
                session, [three.id, five.id, other.id], StationUpdate(feed=Feed.SIX_PM), admin.id
            )

        assert excinfo.value.field == "feed"
        session.expire_all()
        assert session.get(Station, three.id).feed is Feed.THREE_PM
        assert session.get(Station, five.id).feed is Feed.FIVE_PM
        assert edit_log_count() == 0

    def test_feed_change_collision_with_existing_station(self, session, admin, make_station):
        make_station(market_number=5, feed=Feed.SIX_PM)
        station = make_station(market_number=5, feed=Feed.THREE_PM)

        with pytest.raises(ValidationError):
            bulk_update_stations(session, [station.id], StationUpdate(feed=Feed.SIX_PM), admin.id)

    def test_empty_selection(self, session, admin):
        with pytest.raises(ValidationError):
            bulk_update_stations(session, [], StationUpdate(call_letters="WZZZ"), admin.id)
