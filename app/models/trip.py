from sqlalchemy import BigInteger, Column, Float, Index, Integer, String

from app.database import Base


class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (
        Index("ix_trips_status_window_start", "status", "window_start_ts"),
        Index("ix_trips_owner_status", "owner_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False)
    origin_label = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_label = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    window_start_ts = Column(BigInteger, nullable=False)
    window_end_ts = Column(BigInteger, nullable=False)
    available_space = Column(String(10), nullable=False, default="medium")  # small|medium|large
    max_weight_kg = Column(Float, nullable=False)
    max_volume_dm3 = Column(Float, nullable=False)
    max_detour_minutes = Column(Integer, nullable=False, default=15)
    # Optional road-route enrichment supplied by the maps collaborator
    route_distance_km = Column(Float, nullable=True)
    route_duration_minutes = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="draft")
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
