from sqlalchemy import BigInteger, Column, Float, ForeignKey, Index, Integer, String, UniqueConstraint

from app.database import Base


class Escalation(Base):
    """One scheduled notification wave for a parcel (stages 2, 3 and 4)."""

    __tablename__ = "escalations"
    __table_args__ = (
        UniqueConstraint("parcel_id", "stage", name="uq_escalations_parcel_stage"),
        Index("ix_escalations_status_due_at", "status", "due_at"),
        Index("ix_escalations_parcel_status", "parcel_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False)
    stage = Column(Integer, nullable=False)
    due_at = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending|running|done|cancelled
    sent_count = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    claimed_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)


class NotificationLog(Base):
    """De-duplication ledger: at most one row per (parcel, recipient)."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint("parcel_id", "recipient_id", name="uq_notification_logs_parcel_recipient"),
        Index("ix_notification_logs_recipient_sent_at", "recipient_id", "sent_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(String(64), nullable=False)
    stage = Column(Integer, nullable=False)
    radius_km = Column(Float, nullable=False)
    sent_at = Column(BigInteger, nullable=False)
    delivery_status = Column(String(20), nullable=False, default="claimed")  # claimed|sent|failed
    provider_response = Column(String(255), nullable=True)
    error = Column(String(255), nullable=True)
