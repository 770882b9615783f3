from sqlalchemy import BigInteger, Column, Index, Integer, String, Text

from app.database import Base


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_created_at", "recipient_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(String(64), nullable=False)
    actor_id = Column(String(64), nullable=True)
    notif_type = Column(String(40), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    trip_id = Column(Integer, nullable=True)
    parcel_id = Column(Integer, nullable=True)
    match_id = Column(Integer, nullable=True)
    read_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)
