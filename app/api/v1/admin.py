from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import get_admin_user
from ...models.user import User
from ...schemas.appointment import AdminStatusUpdateRequest, AppointmentPage, AppointmentResponse
from ...schemas.auth import AdminUserCreate, UserPage, UserResponse, UserStatusUpdate
from ...services.auth_service import AuthService
from ...services.scheduling_service import SchedulingService
from ...services.status_service import StatusTransitionService, parse_status

router = APIRouter(prefix="/admin", tags=["Administration"])

# Accounts

def _user_page(
    db: Session,
    role: Optional[UserRole],
    search: Optional[str],
    specialization: Optional[str],
    skip: int,
    limit: int,
) -> UserPage:
    service = AuthService(db)
    total, items = service.list_users(role, search, specialization, skip, limit)
    return UserPage(
        total=total,
        skip=skip,
        limit=limit,
        items=[UserResponse.model_validate(user) for user in items],
        specializations=service.list_specializations() if role == UserRole.DOCTOR else None,
    )

@router.get("/users", response_model=UserPage)
def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    specialization: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Accounts matching name/email ``search``, optionally one role only."""
    return _user_page(db, role, search, specialization, skip, limit)

@router.get("/doctors", response_model=UserPage)
def list_doctors(
    search: Optional[str] = None,
    specialization: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Doctor accounts plus the specializations in use."""
    return _user_page(db, UserRole.DOCTOR, search, specialization, skip, limit)

@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: AdminUserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    return AuthService(db).create_user(user_data)

@router.patch("/users/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: int,
    update: UserStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Activate or deactivate an account."""
    return AuthService(db).set_user_active(user_id, update.is_active, admin)

@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    AuthService(db).delete_user(user_id, admin)

# Appointments

@router.get("/appointments", response_model=AppointmentPage)
def list_appointments(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    on_date: Optional[date] = Query(default=None, alias="date"),
    doctor_id: Optional[int] = Query(default=None, alias="doctorId"),
    patient_id: Optional[int] = Query(default=None, alias="patientId"),
    search: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """All appointments with filters and pagination."""
    service = SchedulingService(db)
    total, items = service.list_admin_appointments(
        status=parse_status(status_filter) if status_filter else None,
        on_date=on_date,
        doctor_id=doctor_id,
        patient_id=patient_id,
        search=search,
        skip=skip,
        limit=limit,
    )
    return AppointmentPage(total=total, skip=skip, limit=limit, items=service.describe(items))

@router.put("/appointments/{appointment_id}", response_model=AppointmentResponse)
def force_appointment_status(
    appointment_id: int,
    update: AdminStatusUpdateRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Force an active appointment to completed or canceled."""
    appointment = StatusTransitionService(db).transition(admin, appointment_id, update.status)
    return SchedulingService(db).describe([appointment])[0]

@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Hard-delete an appointment in any state."""
    StatusTransitionService(db).delete(admin, appointment_id)
