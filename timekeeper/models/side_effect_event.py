from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from timekeeper.db.session import Base


class SideEffectEvent(Base):
    """Outbox row written in the same transaction as an OT state change."""

    __tablename__ = "side_effect_events"

    id = Column(Integer, primary_key=True, index=True)
    ot_request_id = Column(Integer, ForeignKey("ot_requests.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # notification|gamification
    event_type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending|sent|failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    dispatched_at = Column(DateTime, nullable=True)
