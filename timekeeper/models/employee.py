from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Time

from timekeeper.db.session import Base


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active|on_leave|terminated

    # Monthly salary; null or zero means OT amounts are left uncomputed
    base_salary = Column(Numeric(12, 2), nullable=True)

    # Overrides the company-wide work_end_time setting when present
    work_end_time = Column(Time, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
