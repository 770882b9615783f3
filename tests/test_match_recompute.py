"""Tests for app/services/match_recompute.py

Run with:  pytest tests/test_match_recompute.py -v
"""

import pytest

from app.core.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from app.models.match import Match
from app.models.notification import Notification
from app.services import match_recompute
from app.services.match_recompute import (
    list_matches,
    recompute_matches_for_parcel,
    recompute_matches_for_trip,
    serialize_match,
    update_trip_detour_limit,
)

from conftest import BASE_TS


def _snapshot(db):
    return sorted(
        (m.trip_id, m.parcel_id, m.score, str(m.total_amount), m.detour_minutes)
        for m in db.query(Match).all()
    )


def test_paris_trip_matches_parcel_on_its_route(db, make_trip, make_parcel):
    trip = make_trip()
    parcel = make_parcel()

    result = recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)

    assert result == {"count": 1}
    match = db.query(Match).one()
    assert match.trip_id == trip.id
    assert match.status == "candidate"
    assert match.score >= 85
    assert match.detour_minutes <= 5
    assert match.ranking_reason.startswith("Excellent fit, low detour")
    assert match.expires_at == BASE_TS + 24 * 60 * 60 * 1000
    assert match.pricing_estimate["currency"] == "EUR"


def test_incompatible_trips_produce_no_rows(db, make_trip, make_parcel):
    make_trip(max_weight_kg=1)
    make_trip(available_space="small")
    parcel = make_parcel(size="medium")

    assert recompute_matches_for_parcel(db, parcel.id, now=BASE_TS) == {"count": 0}
    assert db.query(Match).count() == 0


def test_recompute_is_idempotent(db, make_trip, make_parcel):
    make_trip()
    make_trip(owner_id="driver-2", max_detour_minutes=10)
    parcel = make_parcel()

    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)
    first = _snapshot(db)
    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)

    assert _snapshot(db) == first
    assert len(first) == 2


def test_trip_owner_notified_only_for_first_match(db, make_trip, make_parcel):
    make_trip(owner_id="driver-1")
    parcel = make_parcel(owner_id="sender-1")

    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)
    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS + 1000)

    notifications = db.query(Notification).filter(Notification.notif_type == "new_match_for_trip").all()
    assert len(notifications) == 1
    assert notifications[0].recipient_id == "driver-1"
    assert notifications[0].parcel_id == parcel.id


def test_same_owner_is_matched_but_not_notified(db, make_trip, make_parcel):
    make_trip(owner_id="user-1")
    parcel = make_parcel(owner_id="user-1")

    assert recompute_matches_for_parcel(db, parcel.id, now=BASE_TS) == {"count": 1}
    assert db.query(Notification).count() == 0


def test_unpublished_subject_is_a_no_op(db, make_trip, make_parcel):
    trip = make_trip()
    parcel = make_parcel()
    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)

    parcel.status = "draft"
    db.commit()

    assert recompute_matches_for_parcel(db, parcel.id, now=BASE_TS) == {"count": 0}
    assert recompute_matches_for_parcel(db, 9999, now=BASE_TS) == {"count": 0}
    # existing rows are left alone
    assert db.query(Match).count() == 1

    trip.status = "completed"
    db.commit()
    assert recompute_matches_for_trip(db, trip.id, now=BASE_TS) == {"count": 0}


def test_trip_recompute_replaces_its_candidate_set(db, make_trip, make_parcel):
    trip = make_trip()
    near = make_parcel()
    make_parcel(status="draft")
    make_parcel(weight_kg=50)

    assert recompute_matches_for_trip(db, trip.id, now=BASE_TS) == {"count": 1}
    assert [m.parcel_id for m in list_matches(db, trip_id=trip.id)] == [near.id]


def _insert_racing_match(monkeypatch, trip_id, parcel_id):
    """Commit a row for the pair right after the pass cleared its own rows."""
    original = match_recompute._delete_matches
    state = {"raced": False}

    def delete_then_race(session, existing):
        original(session, existing)
        if state["raced"]:
            return
        state["raced"] = True
        session.add(
            Match(
                trip_id=trip_id,
                parcel_id=parcel_id,
                score=1,
                detour_minutes=0,
                detour_distance_km=0,
                total_amount=0,
                pricing_estimate={},
                ranking_reason="from the other pass",
                created_at=BASE_TS,
                updated_at=BASE_TS,
            )
        )
        session.commit()

    monkeypatch.setattr(match_recompute, "_delete_matches", delete_then_race)
    return state


@pytest.mark.parametrize("subject", ["parcel", "trip"])
def test_pass_colliding_with_the_other_side_retries(db, make_trip, make_parcel, monkeypatch, subject):
    trip = make_trip()
    parcel = make_parcel()
    state = _insert_racing_match(monkeypatch, trip.id, parcel.id)

    if subject == "parcel":
        result = recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)
    else:
        result = recompute_matches_for_trip(db, trip.id, now=BASE_TS)

    assert state["raced"] is True
    assert result == {"count": 1}
    match = db.query(Match).one()
    assert match.ranking_reason.startswith("Excellent fit")
    assert match.score >= 85


def test_list_matches_ordering(db, make_trip, make_parcel):
    tight = make_trip()
    generous = make_trip(owner_id="driver-2", max_detour_minutes=180)
    parcel = make_parcel()
    recompute_matches_for_parcel(db, parcel.id, now=BASE_TS)

    # same detour, but it eats a smaller share of the generous budget
    ordered = list_matches(db, parcel_id=parcel.id)
    assert [m.trip_id for m in ordered] == [generous.id, tight.id]
    assert ordered[0].score > ordered[1].score

    payload = serialize_match(ordered[0])
    assert payload["trip_id"] == generous.id
    assert payload["pricing_estimate"]["detour_bracket"] == "0-5"


def test_list_matches_requires_exactly_one_subject(db):
    with pytest.raises(InvalidInputError):
        list_matches(db)
    with pytest.raises(InvalidInputError):
        list_matches(db, parcel_id=1, trip_id=1)


class TestDetourLimit:
    def test_owner_update_triggers_recompute(self, db, make_trip, make_parcel):
        trip = make_trip(max_detour_minutes=0)
        make_parcel(origin_lat=48.75, origin_lng=2.30)

        assert recompute_matches_for_trip(db, trip.id, now=BASE_TS) == {"count": 0}

        result = update_trip_detour_limit(db, trip.id, user_id="driver-1", max_detour_minutes=60, now=BASE_TS)

        assert result == {"max_detour_minutes": 60, "count": 1}
        db.refresh(trip)
        assert trip.max_detour_minutes == 60

    def test_rejects_other_users(self, db, make_trip):
        trip = make_trip()
        with pytest.raises(NotAuthorizedError):
            update_trip_detour_limit(db, trip.id, user_id="intruder", max_detour_minutes=10)

    def test_missing_trip(self, db):
        with pytest.raises(NotFoundError):
            update_trip_detour_limit(db, 404, user_id="driver-1", max_detour_minutes=10)

    @pytest.mark.parametrize("minutes", [-1, 181])
    def test_out_of_range(self, db, make_trip, minutes):
        trip = make_trip()
        with pytest.raises(InvalidInputError):
            update_trip_detour_limit(db, trip.id, user_id="driver-1", max_detour_minutes=minutes)
