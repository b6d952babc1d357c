from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VitalCreate(BaseModel):
    type: str = Field(min_length=1, max_length=50)
    value: str = Field(min_length=1, max_length=50)
    notes: Optional[str] = None


class VitalResponse(VitalCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_record_id: int
    recorded_by_user_id: Optional[int] = None
    recorded_at: Optional[datetime] = None


class PrescriptionCreate(BaseModel):
    medication: str = Field(min_length=1, max_length=200)
    dosage: str = Field(min_length=1, max_length=200)


class PrescriptionResponse(PrescriptionCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_record_id: int
    prescribed_by_user_id: int
    created_at: Optional[datetime] = None


class TestResultCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    result: str = Field(min_length=1)


class TestResultResponse(TestResultCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_record_id: int
    created_at: Optional[datetime] = None


class PatientUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=20)
    phone_number: Optional[str] = Field(default=None, max_length=20)


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None


class PatientDetailResponse(PatientResponse):
    vitals: List[VitalResponse] = []
    prescriptions: List[PrescriptionResponse] = []
    test_results: List[TestResultResponse] = []
