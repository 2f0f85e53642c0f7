from sqlalchemy import Column, Integer, String, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from ..core.database import Base

class AvailabilitySlot(Base):
    """One open (date, time) slot declared by a doctor.

    A doctor's ``DateSlot`` for a given date is the set of rows sharing
    ``(doctor_id, date)``. The unique constraint keeps labels unique per
    date, and booking consumes a slot by deleting its row.
    """
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("doctor_id", "date", "time", name="uq_availability_doctor_date_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<AvailabilitySlot(doctor_id={self.doctor_id}, date='{self.date}', time='{self.time}')>"
