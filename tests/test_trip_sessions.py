"""Tests for app/services/trip_sessions.py"""

import pytest

from app.core.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from app.models.notification import Notification
from app.models.trip_session import TripSession
from app.models.user import User
from app.services.session_ranking import LocationPoint
from app.services.trip_sessions import (
    SessionPlace,
    get_active_session,
    list_session_matches,
    push_session_location,
    start_trip_session,
    stop_trip_session,
)
from app.utils.clock import MINUTE_MS

from conftest import BASE_TS

ORIGIN = SessionPlace(label="Châtelet", lat=48.8566, lng=2.3522, city="Paris")
DESTINATION = SessionPlace(label="Vincennes", lat=48.864, lng=2.42, city="Vincennes")


@pytest.fixture()
def near_parcel(make_parcel):
    def _make(**kwargs):
        defaults = dict(
            origin_lat=48.857,
            origin_lng=2.36,
            destination_lat=48.86,
            destination_lng=2.41,
            description="Box of books",
        )
        defaults.update(kwargs)
        return make_parcel(**defaults)

    return _make


def _start(db, user_id="traveler-1", **kwargs):
    params = dict(
        user_id=user_id,
        origin=ORIGIN,
        destination=DESTINATION,
        deviation_max_minutes=10,
        opportunities_enabled=True,
        now=BASE_TS,
    )
    params.update(kwargs)
    return start_trip_session(db, **params)["trip_session_id"]


def _push(db, session_id, timestamp, lat=48.8566, lng=2.3522, user_id="traveler-1", now=None):
    return push_session_location(
        db,
        session_id,
        user_id=user_id,
        location=LocationPoint(lat, lng, timestamp),
        now=now if now is not None else timestamp,
    )


class TestStart:
    def test_new_session_stops_previous(self, db):
        first = _start(db)
        second = _start(db)

        assert db.get(TripSession, first).status == "STOPPED"
        assert db.get(TripSession, second).status == "ACTIVE"
        assert get_active_session(db, "traveler-1").id == second

    def test_marks_traveler_online(self, db, make_user):
        make_user("traveler-1", is_online=False)
        _start(db)
        assert db.get(User, "traveler-1").is_online is True

    @pytest.mark.parametrize("deviation", [0, 7, 45])
    def test_rejects_unsupported_deviation(self, db, deviation):
        with pytest.raises(InvalidInputError) as exc:
            _start(db, deviation_max_minutes=deviation)
        assert exc.value.reason == "deviation_not_allowed"
        assert db.query(TripSession).count() == 0

    def test_rejects_bad_coordinates(self, db):
        with pytest.raises(InvalidInputError):
            _start(db, origin=SessionPlace(label="Nowhere", lat=91, lng=0))


class TestPushLocation:
    def test_first_push_counts_and_notifies(self, db, near_parcel, make_parcel):
        near_parcel()
        make_parcel(origin_lat=48.45, origin_lng=1.8, destination_lat=48.38, destination_lng=1.6)
        session_id = _start(db)

        result = _push(db, session_id, BASE_TS)

        assert result == {
            "matches_count": 1,
            "previous_matches_count": 0,
            "should_notify": True,
            "destination_label": "Vincennes",
            "accepted": True,
        }
        note = db.query(Notification).filter(Notification.notif_type == "trip_session_matches").one()
        assert note.recipient_id == "traveler-1"
        assert note.title == "1 parcels available on your route"
        assert note.message == "Towards Vincennes"

    def test_throttled_and_stale_updates_are_ignored(self, db, near_parcel):
        near_parcel()
        session_id = _start(db)
        _push(db, session_id, BASE_TS)
        near_parcel()

        throttled = _push(db, session_id, BASE_TS + 5_000)
        stale = _push(db, session_id, BASE_TS - 60_000)

        for result in (throttled, stale):
            assert result["accepted"] is False
            assert result["matches_count"] == 1
            assert result["should_notify"] is False
        assert db.get(TripSession, session_id).last_location_ts == BASE_TS

    def test_cooldown_suppresses_second_notification(self, db, near_parcel):
        near_parcel()
        session_id = _start(db)
        _push(db, session_id, BASE_TS)

        near_parcel()
        within_cooldown = _push(db, session_id, BASE_TS + MINUTE_MS)
        assert within_cooldown["matches_count"] == 2
        assert within_cooldown["previous_matches_count"] == 1
        assert within_cooldown["should_notify"] is False

        near_parcel()
        after_cooldown = _push(db, session_id, BASE_TS + 11 * MINUTE_MS)
        assert after_cooldown["matches_count"] == 3
        assert after_cooldown["should_notify"] is True

        assert db.query(Notification).count() == 2

    def test_opportunities_disabled_never_notifies(self, db, near_parcel):
        near_parcel()
        session_id = _start(db, opportunities_enabled=False)

        result = _push(db, session_id, BASE_TS)

        assert result["matches_count"] == 1
        assert result["should_notify"] is False
        assert db.query(Notification).count() == 0

    def test_updates_presence_location(self, db, make_user):
        make_user("traveler-1", last_lat=None, last_lng=None)
        session_id = _start(db)
        _push(db, session_id, BASE_TS, lat=48.86, lng=2.37)

        user = db.get(User, "traveler-1")
        assert (user.last_lat, user.last_lng) == (48.86, 2.37)
        assert user.last_location_at == BASE_TS

    def test_stopped_session_returns_cached_count(self, db, near_parcel):
        near_parcel()
        session_id = _start(db)
        _push(db, session_id, BASE_TS)
        stop_trip_session(db, session_id, user_id="traveler-1", now=BASE_TS)

        result = _push(db, session_id, BASE_TS + 5 * MINUTE_MS, lat=48.86)
        assert result["accepted"] is False
        assert result["matches_count"] == 1

    def test_owner_only(self, db):
        session_id = _start(db)
        with pytest.raises(NotAuthorizedError):
            _push(db, session_id, BASE_TS, user_id="someone-else")
        with pytest.raises(NotFoundError):
            _push(db, 9999, BASE_TS)


class TestListAndStop:
    def test_list_enriches_ranked_entries(self, db, near_parcel):
        parcel = near_parcel()
        session_id = _start(db)

        matches = list_session_matches(db, session_id, user_id="traveler-1", limit=5)

        assert len(matches) == 1
        entry = matches[0]
        assert entry["parcel_id"] == parcel.id
        assert entry["description"] == "Box of books"
        assert entry["size"] == "small"
        assert 0 < entry["score"] <= 100
        assert entry["estimated_detour_minutes"] <= 10

    def test_list_missing_session_is_empty(self, db):
        assert list_session_matches(db, 12345, user_id="traveler-1") == []

    def test_list_not_owned(self, db):
        session_id = _start(db)
        with pytest.raises(NotAuthorizedError):
            list_session_matches(db, session_id, user_id="someone-else")

    def test_stop_is_idempotent(self, db, make_user):
        make_user("traveler-1")
        session_id = _start(db)

        assert stop_trip_session(db, session_id, user_id="traveler-1", now=BASE_TS) == {"success": True}
        assert stop_trip_session(db, session_id, user_id="traveler-1", now=BASE_TS) == {"success": True}

        session = db.get(TripSession, session_id)
        assert session.status == "STOPPED"
        assert session.ended_at == BASE_TS
        assert db.get(User, "traveler-1").is_online is False
        assert get_active_session(db, "traveler-1") is None
