from datetime import date as date_type
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class AvailabilityUpdate(BaseModel):
    date: date_type
    times: List[str] = Field(default_factory=list)


class DateSlot(BaseModel):
    date: date_type
    times: List[str]


class DoctorSchedule(BaseModel):
    doctor_id: int = Field(
        validation_alias=AliasChoices("doctor_id", "doctorId"),
        serialization_alias="doctorId",
    )
    available_slots: List[DateSlot] = Field(
        validation_alias=AliasChoices("available_slots", "availableSlots"),
        serialization_alias="availableSlots",
    )
    message: Optional[str] = None


class DayAvailability(BaseModel):
    doctor_id: int = Field(
        validation_alias=AliasChoices("doctor_id", "doctorId"),
        serialization_alias="doctorId",
    )
    date: date_type
    times: List[str]


class AvailableDoctor(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None
    available_slots: List[DateSlot] = Field(
        validation_alias=AliasChoices("available_slots", "availableSlots"),
        serialization_alias="availableSlots",
    )
