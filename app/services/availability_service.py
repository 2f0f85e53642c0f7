import logging
from collections import OrderedDict
from datetime import date, timedelta
from typing import Iterable, List, Optional

from fastapi import status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import SlotUnavailable, ValidationError
from ..core.slots import normalize_time_label, sort_times
from ..models.appointment import ACTIVE_STATUSES, Appointment
from ..models.availability import AvailabilitySlot
from ..schemas.availability import DateSlot

logger = logging.getLogger(__name__)


class AvailabilityStore:
    """Per-doctor open slots, one row per (doctor, date, time).

    ``set_availability`` and ``get_*`` manage their own transaction.
    ``consume_slot`` runs inside the caller's transaction so that booking can
    consume the slot and create the appointment atomically.
    """

    def __init__(self, db: Session):
        self.db = db

    def set_availability(self, doctor_id: int, slot_date: date, times: Iterable[str]) -> List[DateSlot]:
        """Replace the doctor's time list for ``slot_date``.

        An empty list clears the date. Returns the doctor's full schedule.
        """
        self._validate_date(slot_date)
        labels = self._normalize_times(times)

        try:
            self.db.query(AvailabilitySlot).filter(
                AvailabilitySlot.doctor_id == doctor_id,
                AvailabilitySlot.date == slot_date,
            ).delete(synchronize_session=False)

            # Read after the delete: a booking that consumed one of these rows
            # has either committed by now or waits for this transaction
            held = self._held_times(doctor_id, slot_date)
            clashing = [label for label in labels if label in held]
            if clashing:
                self.db.rollback()
                raise ValidationError(
                    f"Times already booked on {slot_date.isoformat()}: {', '.join(clashing)}"
                )

            self.db.add_all([
                AvailabilitySlot(doctor_id=doctor_id, date=slot_date, time=label)
                for label in labels
            ])
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ValidationError(
                "Availability for this date was changed by another request, please retry",
                status_code=status.HTTP_409_CONFLICT,
            ) from exc
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(
            f"Doctor {doctor_id} availability for {slot_date.isoformat()} set to {labels or 'none'}"
        )
        return self.get_schedule(doctor_id)

    def get_availability(self, doctor_id: int, slot_date: date) -> List[str]:
        """Return the open time labels for one date, or an empty list."""
        rows = self.db.query(AvailabilitySlot.time).filter(
            AvailabilitySlot.doctor_id == doctor_id,
            AvailabilitySlot.date == slot_date,
        ).all()
        return sort_times(time_label for (time_label,) in rows)

    def get_schedule(self, doctor_id: int, from_date: Optional[date] = None) -> List[DateSlot]:
        """Return every ``DateSlot`` of the doctor, ordered by date."""
        query = self.db.query(AvailabilitySlot.date, AvailabilitySlot.time).filter(
            AvailabilitySlot.doctor_id == doctor_id
        )
        if from_date is not None:
            query = query.filter(AvailabilitySlot.date >= from_date)

        grouped: "OrderedDict[date, List[str]]" = OrderedDict()
        for slot_date, time_label in query.order_by(AvailabilitySlot.date.asc()).all():
            grouped.setdefault(slot_date, []).append(time_label)

        return [DateSlot(date=slot_date, times=sort_times(labels)) for slot_date, labels in grouped.items()]

    def consume_slot(self, doctor_id: int, slot_date: date, time_label: str) -> None:
        """Remove exactly one open slot, or raise ``SlotUnavailable``.

        The conditional delete is the compare-and-swap: of two concurrent
        consumers of the same key only one sees a deleted row.
        """
        deleted = self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.doctor_id == doctor_id,
            AvailabilitySlot.date == slot_date,
            AvailabilitySlot.time == time_label,
        ).delete(synchronize_session=False)

        if deleted != 1:
            raise SlotUnavailable(
                f"{slot_date.isoformat()} {time_label} is no longer available for this doctor"
            )

    def clear_doctor(self, doctor_id: int) -> int:
        """Drop all open slots of a doctor (account removal). Caller commits."""
        return self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.doctor_id == doctor_id
        ).delete(synchronize_session=False)

    def _held_times(self, doctor_id: int, slot_date: date) -> set:
        rows = self.db.query(Appointment.time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == slot_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        ).all()
        return {time_label for (time_label,) in rows}

    @staticmethod
    def _validate_date(slot_date: Optional[date]) -> None:
        if slot_date is None:
            raise ValidationError("Date is required")

        today = date.today()
        if slot_date < today:
            raise ValidationError("Availability cannot be set for a past date")
        if slot_date > today + timedelta(days=settings.AVAILABILITY_HORIZON_DAYS):
            raise ValidationError(
                f"Availability can only be set up to {settings.AVAILABILITY_HORIZON_DAYS} days ahead"
            )

    @staticmethod
    def _normalize_times(times: Optional[Iterable[str]]) -> List[str]:
        try:
            return sort_times(normalize_time_label(label) for label in (times or []))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
