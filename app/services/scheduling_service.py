import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import Forbidden, NotFound, SlotUnavailable, ValidationError
from ..core.security import UserRole
from ..core.slots import normalize_time_label
from ..models.appointment import Appointment, AppointmentStatus
from ..models.user import User
from ..schemas.appointment import AppointmentResponse
from ..schemas.availability import AvailableDoctor
from .availability_service import AvailabilityStore

logger = logging.getLogger(__name__)


class SchedulingService:
    """Booking and caller-scoped appointment queries."""

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityStore(db)

    def book_appointment(
        self,
        patient: User,
        doctor_id: Optional[int],
        appointment_date: Optional[date],
        time_label: Optional[str],
        reason: Optional[str],
    ) -> Appointment:
        """Consume the slot and create a ``pending`` appointment atomically.

        Either both happen or neither does; a slot that is already gone
        raises ``SlotUnavailable``.
        """
        if patient.role != UserRole.PATIENT:
            raise Forbidden("Only patients can book appointments")

        if not doctor_id:
            raise ValidationError("Doctor is required")
        if appointment_date is None:
            raise ValidationError("Date is required")
        if appointment_date < date.today():
            raise ValidationError("Appointments cannot be booked in the past")

        try:
            time_label = normalize_time_label(time_label)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reason for visit is required")
        if len(reason) > settings.MAX_REASON_LENGTH:
            raise ValidationError(f"Reason must be {settings.MAX_REASON_LENGTH} characters or fewer")

        self.get_doctor(doctor_id)

        try:
            self.availability.consume_slot(doctor_id, appointment_date, time_label)
            appointment = Appointment(
                doctor_id=doctor_id,
                patient_id=patient.id,
                date=appointment_date,
                time=time_label,
                reason=reason,
                status=AppointmentStatus.PENDING,
            )
            self.db.add(appointment)
            self.db.commit()
        except SlotUnavailable:
            self.db.rollback()
            logger.warning(
                f"Patient {patient.id} lost slot {appointment_date} {time_label} with doctor {doctor_id}"
            )
            raise
        except IntegrityError as exc:
            # Another active appointment already holds this slot
            self.db.rollback()
            raise SlotUnavailable() from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} booked: patient {patient.id}, doctor {doctor_id}, "
            f"{appointment_date} {time_label}"
        )
        return appointment

    def get_doctor(self, doctor_id: int) -> User:
        doctor = self.db.query(User).filter(
            User.id == doctor_id,
            User.role == UserRole.DOCTOR,
            User.is_active.is_(True),
        ).first()
        if not doctor:
            raise NotFound("Doctor not found")
        return doctor

    def get_appointment(self, caller: User, appointment_id: int) -> Appointment:
        """Fetch one appointment visible to the caller."""
        appointment = self.db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")

        if caller.role != UserRole.ADMIN and caller.id not in (appointment.doctor_id, appointment.patient_id):
            raise Forbidden("You can only view your own appointments")
        return appointment

    def list_appointments(
        self,
        caller: User,
        status: Optional[AppointmentStatus] = None,
    ) -> List[Appointment]:
        """Appointments scoped to the caller: own ones, or all for admins."""
        query = self.db.query(Appointment)
        if caller.role == UserRole.PATIENT:
            query = query.filter(Appointment.patient_id == caller.id)
        elif caller.role == UserRole.DOCTOR:
            query = query.filter(Appointment.doctor_id == caller.id)

        if status is not None:
            query = query.filter(Appointment.status == status)

        return query.order_by(
            Appointment.date.desc(), Appointment.time.desc(), Appointment.id.desc()
        ).all()

    def list_admin_appointments(
        self,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[date] = None,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 10,
    ) -> Tuple[int, List[Appointment]]:
        """Filtered, paginated listing for the admin management screen."""
        query = self.db.query(Appointment)

        if status is not None:
            query = query.filter(Appointment.status == status)
        if on_date is not None:
            query = query.filter(Appointment.date == on_date)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            matching_users = select(User.id).where(
                or_(User.full_name.ilike(pattern), User.email.ilike(pattern))
            )
            query = query.filter(or_(
                Appointment.reason.ilike(pattern),
                Appointment.doctor_id.in_(matching_users),
                Appointment.patient_id.in_(matching_users),
            ))

        total = query.count()
        items = query.order_by(
            Appointment.created_at.desc(), Appointment.id.desc()
        ).offset(skip).limit(limit).all()
        return total, items

    def list_available_doctors(self) -> List[AvailableDoctor]:
        """Active doctors with their schedule from today onwards."""
        doctors = self.db.query(User).filter(
            User.role == UserRole.DOCTOR,
            User.is_active.is_(True),
        ).order_by(User.full_name.asc()).all()

        today = date.today()
        return [
            AvailableDoctor(
                id=doctor.id,
                name=doctor.full_name,
                specialization=doctor.specialization,
                available_slots=self.availability.get_schedule(doctor.id, from_date=today),
            )
            for doctor in doctors
        ]

    def describe(self, appointments: Sequence[Appointment]) -> List[AppointmentResponse]:
        """Build responses enriched with doctor and patient names."""
        user_ids = {a.doctor_id for a in appointments} | {a.patient_id for a in appointments}
        names = {}
        if user_ids:
            names = dict(
                self.db.query(User.id, User.full_name).filter(User.id.in_(list(user_ids))).all()
            )

        responses = []
        for appointment in appointments:
            response = AppointmentResponse.model_validate(appointment)
            response.doctor_name = names.get(appointment.doctor_id)
            response.patient_name = names.get(appointment.patient_id)
            responses.append(response)
        return responses
