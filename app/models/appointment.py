from sqlalchemy import Column, Integer, String, Date, DateTime, Text, Index, Enum as SQLEnum, text
from sqlalchemy.sql import func
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value: str) -> "AppointmentStatus":
        """Parse a status name, accepting the legacy ``cancelled`` spelling."""
        normalized = (value or "").strip().lower()
        if normalized == "cancelled":
            normalized = cls.CANCELED.value
        return cls(normalized)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

TERMINAL_STATUSES = (
    AppointmentStatus.REJECTED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELED,
)
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

# Only one pending/confirmed appointment may hold a given doctor slot
_ACTIVE_SLOT_CONDITION = text("status IN ('pending', 'confirmed')")

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "doctor_id", "date", "time",
            unique=True,
            sqlite_where=_ACTIVE_SLOT_CONDITION,
            postgresql_where=_ACTIVE_SLOT_CONDITION,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Weak references to users
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)

    # Appointment details
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)
    status = Column(
        SQLEnum(
            AppointmentStatus,
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=AppointmentStatus.PENDING,
        index=True,
    )
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, date='{self.date}', time='{self.time}', status='{self.status}')>"
