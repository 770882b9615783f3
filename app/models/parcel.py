from sqlalchemy import BigInteger, Boolean, Column, Float, Index, Integer, Numeric, String, Text

from app.database import Base

# listing status shared by parcels and trips; anything else is closed
OPEN_STATUS = "published"


class Parcel(Base):
    __tablename__ = "parcels"
    __table_args__ = (
        Index("ix_parcels_status_window_start", "status", "preferred_window_start_ts"),
        Index("ix_parcels_owner_status", "owner_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False)
    origin_label = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_label = Column(String(255), nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    size = Column(String(10), nullable=False, default="small")  # small|medium|large
    weight_kg = Column(Float, nullable=False)
    volume_dm3 = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    urgency_level = Column(String(10), nullable=False, default="normal")  # normal|urgent|express
    fragile = Column(Boolean, nullable=False, default=False)
    insurance_value = Column(Numeric(12, 2), nullable=True)
    proposed_price = Column(Numeric(10, 2), nullable=True)
    preferred_window_start_ts = Column(BigInteger, nullable=False)
    preferred_window_end_ts = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
