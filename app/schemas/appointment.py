from datetime import date as date_type, datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..models.appointment import AppointmentStatus


def _camel(name: str, camel: str, default=...):
    """Field accepting either spelling on input and emitting camelCase."""
    return Field(default, validation_alias=AliasChoices(name, camel), serialization_alias=camel)


class BookingRequest(BaseModel):
    doctor_id: int = _camel("doctor_id", "doctorId")
    date: date_type
    time: str
    reason: str


class StatusUpdateRequest(BaseModel):
    status: str
    notes: Optional[str] = None


class AdminStatusUpdateRequest(BaseModel):
    status: str


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    doctor_id: int = _camel("doctor_id", "doctorId")
    patient_id: int = _camel("patient_id", "patientId")
    date: date_type
    time: str
    reason: str
    status: AppointmentStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = _camel("created_at", "createdAt", None)
    updated_at: Optional[datetime] = _camel("updated_at", "updatedAt", None)
    doctor_name: Optional[str] = _camel("doctor_name", "doctorName", None)
    patient_name: Optional[str] = _camel("patient_name", "patientName", None)


class BookingResponse(BaseModel):
    appointment_id: int = _camel("appointment_id", "appointmentId")
    status: AppointmentStatus
    message: str
    appointment: AppointmentResponse


class AppointmentPage(BaseModel):
    total: int
    skip: int
    limit: int
    items: List[AppointmentResponse]
