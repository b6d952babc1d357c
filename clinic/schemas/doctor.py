from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AvailabilityCreate(BaseModel):
    """A weekly rule (``day_of_week``, Monday == 0) or a one-off rule (``specific_date``)."""
    is_recurring: bool = True
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    specific_date: Optional[date] = None
    start_time: time
    end_time: time
    max_appointments_per_slot: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.is_recurring and self.day_of_week is None:
            raise ValueError("day_of_week is required for recurring availability")
        if not self.is_recurring and self.specific_date is None:
            raise ValueError("specific_date is required for one-off availability")
        return self


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    doctor_id: int
    is_recurring: bool
    day_of_week: int
    specific_date: Optional[date] = None
    start_time: time
    end_time: time
    max_appointments_per_slot: int


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    is_available: bool
    booked_count: int
    max_appointments: int


class DoctorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    full_name: str
    specialization_id: int
    specialization_name: Optional[str] = None
    years_of_experience: Optional[int] = 0
    consultation_fee: Decimal
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    is_active: bool


class DoctorProfileResponse(DoctorResponse):
    availabilities: List[AvailabilityResponse] = []


class DoctorProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    specialization_id: Optional[int] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[str] = Field(default=None, max_length=500)
    years_of_experience: Optional[int] = Field(default=None, ge=0)
    consultation_fee: Optional[Decimal] = Field(default=None, ge=0)
