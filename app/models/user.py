from sqlalchemy import BigInteger, Boolean, Column, Float, Integer, Numeric, String

from app.database import Base


class User(Base):
    """Carrier presence and notification preferences.

    Written by the identity collaborator and by trip-session pushes
    (last writer wins on location). Read by the escalation waves.
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    display_name = Column(String(120), nullable=True)
    is_online = Column(Boolean, nullable=False, default=False, index=True)
    last_active_at = Column(BigInteger, nullable=True)
    last_lat = Column(Float, nullable=True)
    last_lng = Column(Float, nullable=True)
    last_location_at = Column(BigInteger, nullable=True)
    notify_radius_km = Column(Integer, nullable=True)
    notify_min_price = Column(Numeric(10, 2), nullable=True)
    notify_urgent_only = Column(Boolean, nullable=False, default=False)
    max_push_per_hour = Column(Integer, nullable=True)
