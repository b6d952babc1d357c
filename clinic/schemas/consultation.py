from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.consultation import ConsultationStatus, ConsultationType


class BookConsultationRequest(BaseModel):
    patient_record_id: int
    doctor_id: int
    # Naive values are read as UTC; values with an offset are converted
    scheduled_at: datetime
    consultation_type: ConsultationType = ConsultationType.IN_PERSON
    symptoms: Optional[str] = Field(default=None, max_length=1000)


class BookingResponse(BaseModel):
    consultation_id: int
    scheduled_at: datetime
    message: str = "Consultation booked successfully"


class AssignNurseRequest(BaseModel):
    nurse_id: int


class UpdateStatusRequest(BaseModel):
    status: ConsultationStatus


class UpdateConsultationRequest(BaseModel):
    diagnosis: Optional[str] = Field(default=None, max_length=1000)
    treatment_plan: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = None
    status: Optional[ConsultationStatus] = None


class ConsultationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_record_id: int
    doctor_id: int
    nurse_id: Optional[int] = None
    scheduled_at: datetime
    duration_minutes: int
    consultation_type: ConsultationType
    status: ConsultationStatus
    symptoms: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    notes: Optional[str] = None
    fee: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ConsultationSummary(BaseModel):
    id: int
    scheduled_at: datetime
    duration_minutes: int
    consultation_type: ConsultationType
    status: ConsultationStatus
    fee: Decimal
    doctor_name: str
    specialization: Optional[str] = None
    patient_name: str
    nurse_name: Optional[str] = None
