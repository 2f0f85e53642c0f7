from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user
from ...models.user import User
from ...schemas.availability import DateSlot, DayAvailability
from ...services.scheduling_service import SchedulingService

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("/{doctor_id}/availability", response_model=DayAvailability)
def get_doctor_availability(
    doctor_id: int,
    on_date: date = Query(alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Open times of a doctor on one date."""
    service = SchedulingService(db)
    service.get_doctor(doctor_id)
    return DayAvailability(
        doctor_id=doctor_id,
        date=on_date,
        times=service.availability.get_availability(doctor_id, on_date),
    )

@router.get("/{doctor_id}/schedule", response_model=List[DateSlot])
def get_doctor_schedule(
    doctor_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Every upcoming date the doctor has open times on."""
    service = SchedulingService(db)
    service.get_doctor(doctor_id)
    return service.availability.get_schedule(doctor_id, from_date=date.today())
