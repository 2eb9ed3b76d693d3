from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from timekeeper.db.session import Base


class OTRequest(Base):
    __tablename__ = "ot_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    request_date = Column(Date, nullable=False, index=True)

    requested_start = Column(DateTime, nullable=False)
    requested_end = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=False)

    # Frozen once set by approval (explicit or implicit at start)
    approved_start = Column(DateTime, nullable=True)
    approved_end = Column(DateTime, nullable=True)
    approved_by = Column(Integer, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(Integer, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    decision_note = Column(Text, nullable=True)

    actual_start = Column(DateTime, nullable=True)
    actual_end = Column(DateTime, nullable=True)
    effective_end = Column(DateTime, nullable=True)
    before_photo_url = Column(String(500), nullable=True)
    after_photo_url = Column(String(500), nullable=True)
    start_lat = Column(Float, nullable=True)
    start_lng = Column(Float, nullable=True)
    end_lat = Column(Float, nullable=True)
    end_lng = Column(Float, nullable=True)

    ot_rate = Column(Numeric(6, 2), nullable=True)
    ot_type = Column(String(20), nullable=True)  # workday|weekend|holiday
    actual_hours = Column(Numeric(8, 2), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    cancelled_by = Column(Integer, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee")
