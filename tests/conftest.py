"""Shared fixtures: in-memory SQLite database built from the ORM models.

Run with:  pytest -v
"""

import sqlite3
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.escalation import Escalation, NotificationLog  # noqa: F401
from app.models.match import Match  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.parcel import Parcel
from app.models.trip import Trip
from app.models.trip_session import TripSession  # noqa: F401
from app.models.user import User
from app.utils.clock import HOUR_MS

sqlite3.register_adapter(Decimal, float)

# 2026-01-05 08:00 UTC
BASE_TS = 1767600000000


def _sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let SQLAlchemy drive it
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture()
def db():
    engine = _sqlite_engine()
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def make_trip(db):
    def _make(**kwargs):
        defaults = dict(
            owner_id="driver-1",
            origin_label="Paris 14e",
            origin_lat=48.80,
            origin_lng=2.35,
            destination_label="Champigny",
            destination_lat=48.85,
            destination_lng=2.50,
            window_start_ts=BASE_TS,
            window_end_ts=BASE_TS + 4 * HOUR_MS,
            available_space="medium",
            max_weight_kg=20,
            max_volume_dm3=60,
            max_detour_minutes=20,
            status="published",
            created_at=BASE_TS,
            updated_at=BASE_TS,
        )
        defaults.update(kwargs)
        trip = Trip(**defaults)
        db.add(trip)
        db.commit()
        return trip

    return _make


@pytest.fixture()
def make_parcel(db):
    def _make(**kwargs):
        defaults = dict(
            owner_id="sender-1",
            origin_label="Ivry",
            origin_lat=48.81,
            origin_lng=2.40,
            destination_label="Nogent",
            destination_lat=48.84,
            destination_lng=2.48,
            size="small",
            weight_kg=2,
            volume_dm3=8,
            urgency_level="normal",
            fragile=False,
            preferred_window_start_ts=BASE_TS,
            preferred_window_end_ts=BASE_TS + 4 * HOUR_MS,
            status="published",
            created_at=BASE_TS,
            updated_at=BASE_TS,
        )
        defaults.update(kwargs)
        parcel = Parcel(**defaults)
        db.add(parcel)
        db.commit()
        return parcel

    return _make


@pytest.fixture()
def make_user(db):
    def _make(user_id, **kwargs):
        defaults = dict(
            id=user_id,
            display_name=user_id,
            is_online=True,
            last_active_at=BASE_TS,
            last_lat=48.811,
            last_lng=2.401,
            last_location_at=BASE_TS,
            notify_radius_km=None,
            notify_min_price=None,
            notify_urgent_only=False,
            max_push_per_hour=None,
        )
        defaults.update(kwargs)
        user = User(**defaults)
        db.add(user)
        db.commit()
        return user

    return _make
