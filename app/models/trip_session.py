from sqlalchemy import BigInteger, Boolean, Column, Float, Index, Integer, String

from app.database import Base


class TripSession(Base):
    __tablename__ = "trip_sessions"
    __table_args__ = (
        Index("ix_trip_sessions_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False)
    origin_label = Column(String(255), nullable=False)
    origin_city = Column(String(120), nullable=True)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_label = Column(String(255), nullable=False)
    destination_city = Column(String(120), nullable=True)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    deviation_max_minutes = Column(Integer, nullable=False)  # 5|10|20|30
    opportunities_enabled = Column(Boolean, nullable=False, default=True)
    status = Column(String(10), nullable=False, default="ACTIVE")  # ACTIVE|STOPPED
    last_lat = Column(Float, nullable=True)
    last_lng = Column(Float, nullable=True)
    last_location_ts = Column(BigInteger, nullable=True)
    matches_count_cache = Column(Integer, nullable=False, default=0)
    last_notified_at = Column(BigInteger, nullable=True)
    started_at = Column(BigInteger, nullable=False)
    ended_at = Column(BigInteger, nullable=True)
    updated_at = Column(BigInteger, nullable=False)
