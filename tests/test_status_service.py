from itertools import product

import pytest

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.exceptions import Forbidden, InvalidTransition, NotFound, ValidationError
from app.core.security import UserRole
from app.models.appointment import Appointment, AppointmentStatus, TERMINAL_STATUSES
from app.models.user import User
from app.services.scheduling_service import SchedulingService
from app.services.status_service import (
    Relation, StatusTransitionService, check_transition_permission, parse_status
)

S = AppointmentStatus


class TestTransitionRules:
    """The permission check on its own, without a database."""

    @pytest.mark.parametrize("current,target,role,relation", [
        (S.PENDING, S.CONFIRMED, UserRole.DOCTOR, Relation.OWNING_DOCTOR),
        (S.PENDING, S.REJECTED, UserRole.DOCTOR, Relation.OWNING_DOCTOR),
        (S.PENDING, S.CANCELED, UserRole.PATIENT, Relation.OWNING_PATIENT),
        (S.CONFIRMED, S.CANCELED, UserRole.PATIENT, Relation.OWNING_PATIENT),
        (S.PENDING, S.CANCELED, UserRole.ADMIN, Relation.NONE),
        (S.CONFIRMED, S.CANCELED, UserRole.ADMIN, Relation.NONE),
        (S.PENDING, S.COMPLETED, UserRole.ADMIN, Relation.NONE),
        (S.CONFIRMED, S.COMPLETED, UserRole.ADMIN, Relation.NONE),
    ])
    def test_allowed(self, current, target, role, relation):
        check_transition_permission(current, target, role, relation)

    @pytest.mark.parametrize("current,target,role,relation", [
        (S.PENDING, S.CONFIRMED, UserRole.PATIENT, Relation.OWNING_PATIENT),
        (S.PENDING, S.CONFIRMED, UserRole.DOCTOR, Relation.NONE),
        (S.PENDING, S.CONFIRMED, UserRole.ADMIN, Relation.NONE),
        (S.PENDING, S.REJECTED, UserRole.PATIENT, Relation.OWNING_PATIENT),
        (S.PENDING, S.CANCELED, UserRole.PATIENT, Relation.NONE),
        (S.PENDING, S.CANCELED, UserRole.DOCTOR, Relation.OWNING_DOCTOR),
        (S.CONFIRMED, S.COMPLETED, UserRole.DOCTOR, Relation.OWNING_DOCTOR),
        (S.CONFIRMED, S.COMPLETED, UserRole.PATIENT, Relation.OWNING_PATIENT),
    ])
    def test_wrong_caller_forbidden(self, current, target, role, relation):
        with pytest.raises(Forbidden):
            check_transition_permission(current, target, role, relation)

    @pytest.mark.parametrize("current,target", [
        (S.CONFIRMED, S.PENDING),
        (S.CONFIRMED, S.REJECTED),
        (S.CONFIRMED, S.CONFIRMED),
        (S.PENDING, S.PENDING),
    ])
    def test_step_outside_lifecycle(self, current, target):
        for role in UserRole:
            with pytest.raises(InvalidTransition):
                check_transition_permission(current, target, role, Relation.NONE)

    @pytest.mark.parametrize("current,target", list(product(TERMINAL_STATUSES, list(AppointmentStatus))))
    def test_terminal_states_are_final(self, current, target):
        for role, relation in [
            (UserRole.ADMIN, Relation.NONE),
            (UserRole.DOCTOR, Relation.OWNING_DOCTOR),
            (UserRole.PATIENT, Relation.OWNING_PATIENT),
        ]:
            with pytest.raises(InvalidTransition):
                check_transition_permission(current, target, role, relation)

    def test_parse_status(self):
        assert parse_status("Confirmed") == S.CONFIRMED
        assert parse_status("cancelled") == S.CANCELED
        assert parse_status(S.REJECTED) == S.REJECTED
        with pytest.raises(ValidationError):
            parse_status("archived")


@pytest.fixture
def transitions(db):
    return StatusTransitionService(db)


@pytest.fixture
def appointment(db, doctor, patient, future_day):
    scheduling = SchedulingService(db)
    scheduling.availability.set_availability(doctor.id, future_day, ["09:00"])
    return scheduling.book_appointment(patient, doctor.id, future_day, "09:00", "Follow-up")


class TestStatusTransitionService:

    def test_doctor_confirms_with_notes_then_patient_cancels(self, transitions, doctor, patient, appointment):
        confirmed = transitions.transition(doctor, appointment.id, "confirmed", notes=" Bring test results ")
        assert confirmed.status == S.CONFIRMED
        assert confirmed.notes == "Bring test results"

        canceled = transitions.cancel(patient, appointment.id)
        assert canceled.status == S.CANCELED
        assert canceled.notes == "Bring test results"

    def test_doctor_rejects(self, transitions, doctor, appointment):
        rejected = transitions.transition(doctor, appointment.id, S.REJECTED, notes="Please see a dermatologist")
        assert rejected.status == S.REJECTED
        assert rejected.notes == "Please see a dermatologist"

    def test_patient_cannot_confirm(self, transitions, db, patient, appointment):
        with pytest.raises(Forbidden):
            transitions.transition(patient, appointment.id, "confirmed")

        db.expire_all()
        assert db.get(Appointment, appointment.id).status == S.PENDING

    def test_other_doctor_cannot_confirm(self, transitions, make_user, appointment):
        colleague = make_user(UserRole.DOCTOR)
        with pytest.raises(Forbidden):
            transitions.transition(colleague, appointment.id, "confirmed")

    def test_other_patient_cannot_cancel(self, transitions, other_patient, appointment):
        with pytest.raises(Forbidden):
            transitions.cancel(other_patient, appointment.id)

    def test_admin_force_completes(self, transitions, doctor, admin, appointment):
        transitions.transition(doctor, appointment.id, "confirmed")

        completed = transitions.transition(admin, appointment.id, "completed")
        assert completed.status == S.COMPLETED

    def test_admin_cannot_revive_terminal(self, transitions, admin, patient, appointment):
        transitions.cancel(patient, appointment.id)

        with pytest.raises(InvalidTransition):
            transitions.transition(admin, appointment.id, "pending")
        with pytest.raises(InvalidTransition):
            transitions.transition(admin, appointment.id, "completed")

    def test_cancel_twice(self, transitions, patient, appointment):
        transitions.cancel(patient, appointment.id)

        with pytest.raises(InvalidTransition):
            transitions.cancel(patient, appointment.id)

    def test_cancelled_spelling_accepted(self, transitions, patient, appointment):
        canceled = transitions.transition(patient, appointment.id, "cancelled")
        assert canceled.status == S.CANCELED

    def test_unknown_status(self, transitions, doctor, appointment):
        with pytest.raises(ValidationError):
            transitions.transition(doctor, appointment.id, "archived")

    def test_missing_appointment(self, transitions, doctor):
        with pytest.raises(NotFound):
            transitions.transition(doctor, 9999, "confirmed")

    def test_only_doctor_adds_notes(self, transitions, db, patient, admin, appointment):
        with pytest.raises(Forbidden):
            transitions.transition(patient, appointment.id, "canceled", notes="changed my mind")
        with pytest.raises(Forbidden):
            transitions.transition(admin, appointment.id, "completed", notes="done")

        db.expire_all()
        stored = db.get(Appointment, appointment.id)
        assert stored.status == S.PENDING
        assert stored.notes is None

    def test_notes_too_long(self, transitions, doctor, appointment):
        with pytest.raises(ValidationError):
            transitions.transition(doctor, appointment.id, "confirmed", notes="x" * (settings.MAX_NOTES_LENGTH + 1))

    def test_cancel_does_not_reopen_slot(self, transitions, db, doctor, patient, appointment, future_day):
        transitions.cancel(patient, appointment.id)

        assert SchedulingService(db).availability.get_availability(doctor.id, future_day) == []

    def test_stale_read_cannot_overwrite(self, db, doctor, patient, appointment):
        """A caller acting on an outdated status loses to the writer that got there first."""
        stale = SessionLocal()
        try:
            # Cache the appointment as pending in a second session
            stale_service = StatusTransitionService(stale)
            assert stale.get(Appointment, appointment.id).status == S.PENDING
            stale_patient = stale.get(User, patient.id)

            StatusTransitionService(db).transition(doctor, appointment.id, "rejected")

            with pytest.raises(InvalidTransition):
                stale_service.cancel(stale_patient, appointment.id)
        finally:
            stale.close()

        db.expire_all()
        assert db.get(Appointment, appointment.id).status == S.REJECTED


class TestDelete:

    def test_admin_deletes_any_state(self, transitions, db, admin, patient, appointment):
        transitions.cancel(patient, appointment.id)

        transitions.delete(admin, appointment.id)
        assert db.get(Appointment, appointment.id) is None

    @pytest.mark.parametrize("role", [UserRole.DOCTOR, UserRole.PATIENT])
    def test_non_admin_cannot_delete(self, transitions, make_user, appointment, role):
        with pytest.raises(Forbidden):
            transitions.delete(make_user(role), appointment.id)

    def test_delete_missing(self, transitions, admin):
        with pytest.raises(NotFound):
            transitions.delete(admin, 9999)
