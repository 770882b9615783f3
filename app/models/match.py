from sqlalchemy import JSON, BigInteger, Column, Float, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint

from app.database import Base


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("trip_id", "parcel_id", name="uq_matches_trip_parcel"),
        Index("ix_matches_trip_score", "trip_id", "score"),
        Index("ix_matches_parcel_score", "parcel_id", "score"),
    )

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="candidate", index=True)
    score = Column(Integer, nullable=False)
    detour_minutes = Column(Integer, nullable=False)
    detour_distance_km = Column(Float, nullable=False)
    route_distance_km = Column(Float, nullable=False, default=0)
    route_duration_minutes = Column(Float, nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    pricing_estimate = Column(JSON, nullable=False)
    ranking_reason = Column(Text, nullable=False)
    expires_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
