from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user, get_doctor_user, rate_limit_check
from ...models.user import User
from ...schemas.appointment import (
    AppointmentResponse, BookingRequest, BookingResponse, StatusUpdateRequest
)
from ...schemas.availability import AvailabilityUpdate, AvailableDoctor, DoctorSchedule
from ...services.availability_service import AvailabilityStore
from ...services.scheduling_service import SchedulingService
from ...services.status_service import StatusTransitionService, parse_status

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.post("/book", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    booking: BookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Book an open slot; the appointment starts as pending."""
    service = SchedulingService(db)
    appointment = service.book_appointment(
        current_user, booking.doctor_id, booking.date, booking.time, booking.reason
    )
    return BookingResponse(
        appointment_id=appointment.id,
        status=appointment.status,
        message="Appointment requested successfully",
        appointment=service.describe([appointment])[0],
    )

@router.get("", response_model=List[AppointmentResponse])
@router.get("/my-appointments", response_model=List[AppointmentResponse])
def list_my_appointments(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Appointments of the caller (all of them for admins)."""
    service = SchedulingService(db)
    appointment_status = parse_status(status_filter) if status_filter else None
    return service.describe(service.list_appointments(current_user, appointment_status))

@router.get("/available-doctors", response_model=List[AvailableDoctor])
def available_doctors(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active doctors with their upcoming open slots."""
    return SchedulingService(db).list_available_doctors()

@router.put("/available-slots", response_model=DoctorSchedule)
@router.post("/available-slots", response_model=DoctorSchedule)
def set_available_slots(
    update: AvailabilityUpdate,
    current_user: User = Depends(get_doctor_user),
    db: Session = Depends(get_db)
):
    """Replace the calling doctor's times for one date."""
    schedule = AvailabilityStore(db).set_availability(current_user.id, update.date, update.times)
    return DoctorSchedule(
        doctor_id=current_user.id,
        available_slots=schedule,
        message=f"Schedule updated for {update.date.isoformat()}",
    )

@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = SchedulingService(db)
    return service.describe([service.get_appointment(current_user, appointment_id)])[0]

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    update: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Doctor triage (confirm/reject with optional notes) or any permitted step."""
    appointment = StatusTransitionService(db).transition(
        current_user, appointment_id, update.status, update.notes
    )
    return SchedulingService(db).describe([appointment])[0]

@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cancel a pending or confirmed appointment."""
    appointment = StatusTransitionService(db).cancel(current_user, appointment_id)
    return SchedulingService(db).describe([appointment])[0]
