"""
Appointment status lifecycle.

    pending   -> confirmed | rejected | canceled | completed
    confirmed -> completed | canceled
    rejected, completed, canceled are terminal

Every entry point (doctor triage, patient cancel, admin override) goes
through ``check_transition_permission`` and then applies the change with a
conditional UPDATE keyed on the status that was read, so a concurrent writer
can never be overwritten.
"""
import enum
import logging
from typing import Dict, FrozenSet, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from ..core.security import UserRole
from ..models.appointment import Appointment, AppointmentStatus
from ..models.user import User

logger = logging.getLogger(__name__)


class Relation(str, enum.Enum):
    """How the caller relates to the appointment."""
    OWNING_DOCTOR = "owning_doctor"
    OWNING_PATIENT = "owning_patient"
    NONE = "none"


# None as relation: any caller holding the role
_Grant = Tuple[UserRole, Optional[Relation]]

_PATIENT_CANCEL: FrozenSet[_Grant] = frozenset({
    (UserRole.PATIENT, Relation.OWNING_PATIENT),
    (UserRole.ADMIN, None),
})
_ADMIN_ONLY: FrozenSet[_Grant] = frozenset({(UserRole.ADMIN, None)})
_OWNING_DOCTOR: FrozenSet[_Grant] = frozenset({(UserRole.DOCTOR, Relation.OWNING_DOCTOR)})

TRANSITION_RULES: Dict[Tuple[AppointmentStatus, AppointmentStatus], FrozenSet[_Grant]] = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): _OWNING_DOCTOR,
    (AppointmentStatus.PENDING, AppointmentStatus.REJECTED): _OWNING_DOCTOR,
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELED): _PATIENT_CANCEL,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED): _PATIENT_CANCEL,
    (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED): _ADMIN_ONLY,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED): _ADMIN_ONLY,
}


def relation_of(caller: User, appointment: Appointment) -> Relation:
    if caller.role == UserRole.DOCTOR and caller.id == appointment.doctor_id:
        return Relation.OWNING_DOCTOR
    if caller.role == UserRole.PATIENT and caller.id == appointment.patient_id:
        return Relation.OWNING_PATIENT
    return Relation.NONE


def check_transition_permission(
    current: AppointmentStatus,
    target: AppointmentStatus,
    role: UserRole,
    relation: Relation,
) -> None:
    """Raise unless ``role``/``relation`` may move an appointment from
    ``current`` to ``target``.

    A terminal source or a step outside the lifecycle is
    ``InvalidTransition``; a valid step taken by the wrong caller is
    ``Forbidden``.
    """
    if current.is_terminal:
        raise InvalidTransition(f"Appointment is already {current.value}")

    grants = TRANSITION_RULES.get((current, target))
    if grants is None:
        raise InvalidTransition(f"Cannot change appointment from {current.value} to {target.value}")

    for granted_role, required_relation in grants:
        if role == granted_role and required_relation in (None, relation):
            return

    raise Forbidden(f"You are not allowed to mark this appointment as {target.value}")


def parse_status(value: Union[str, AppointmentStatus]) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus.parse(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown appointment status: {value!r}") from exc


class StatusTransitionService:
    def __init__(self, db: Session):
        self.db = db

    def transition(
        self,
        caller: User,
        appointment_id: int,
        target: Union[str, AppointmentStatus],
        notes: Optional[str] = None,
    ) -> Appointment:
        """Move an appointment to ``target`` on behalf of ``caller``."""
        target = parse_status(target)
        appointment = self._get(appointment_id)
        observed = appointment.status

        check_transition_permission(observed, target, caller.role, relation_of(caller, appointment))

        values = {Appointment.status: target}
        notes = notes.strip() if notes else None
        if notes:
            if caller.role != UserRole.DOCTOR:
                raise Forbidden("Only the doctor can add notes to an appointment")
            if len(notes) > settings.MAX_NOTES_LENGTH:
                raise ValidationError(f"Notes must be {settings.MAX_NOTES_LENGTH} characters or fewer")
            values[Appointment.notes] = notes

        try:
            updated = self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status == observed,
            ).update(values, synchronize_session=False)

            if updated != 1:
                self.db.rollback()
                if self.db.get(Appointment, appointment_id) is None:
                    raise NotFound("Appointment not found")
                logger.warning(
                    f"Appointment {appointment_id} changed concurrently; "
                    f"{observed.value} -> {target.value} by user {caller.id} rejected"
                )
                raise InvalidTransition("Appointment was updated by another request, please reload it")

            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment_id}: {observed.value} -> {target.value} "
            f"by {caller.role.value} {caller.id}"
        )
        return appointment

    def cancel(self, caller: User, appointment_id: int) -> Appointment:
        return self.transition(caller, appointment_id, AppointmentStatus.CANCELED)

    def delete(self, caller: User, appointment_id: int) -> None:
        """Hard-delete a record in any state (admins only)."""
        if caller.role != UserRole.ADMIN:
            raise Forbidden("Only administrators can delete appointments")

        appointment = self._get(appointment_id)
        try:
            self.db.delete(appointment)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(f"Appointment {appointment_id} deleted by admin {caller.id}")

    def _get(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        return appointment
