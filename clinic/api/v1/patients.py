from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.exceptions import NotFoundError
from ...core.security import Actor, AuthorizationError, STAFF_ROLES
from ...api.deps import get_current_actor
from ...models.patient import PatientRecord, Prescription, TestResult, Vital
from ...schemas.patient import (
    PatientDetailResponse, PatientResponse, PatientUpdate,
    PrescriptionCreate, PrescriptionResponse,
    TestResultCreate, TestResultResponse,
    VitalCreate, VitalResponse,
)
from ...services.authorization import PatientOperation, check_patient_access

router = APIRouter(prefix="/patients", tags=["Patients"])


def _load_record(db: Session, patient_id: int) -> PatientRecord:
    record = db.get(PatientRecord, patient_id)
    if not record:
        raise NotFoundError("Patient record not found")
    return record


def _require_staff(actor: Actor) -> None:
    if not any(actor.has_role(role) for role in STAFF_ROLES):
        raise AuthorizationError("Only clinical staff may record this")


@router.get("/{patient_id}", response_model=PatientDetailResponse)
async def get_patient(
    patient_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Patient record with vitals, prescriptions and test results."""
    check_patient_access(db, actor, PatientOperation.VIEW, patient_id)
    return _load_record(db, patient_id)


@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    update: PatientUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_patient_access(db, actor, PatientOperation.UPDATE, patient_id)
    record = _load_record(db, patient_id)

    for field, value in update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(record, field, value)

    db.commit()
    db.refresh(record)
    return record


@router.post("/{patient_id}/vitals", response_model=VitalResponse, status_code=status.HTTP_201_CREATED)
async def add_vital(
    patient_id: int,
    vital: VitalCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_patient_access(db, actor, PatientOperation.UPDATE, patient_id)
    _require_staff(actor)
    _load_record(db, patient_id)

    entry = Vital(
        patient_record_id=patient_id,
        recorded_by_user_id=actor.id,
        **vital.model_dump()
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@router.post("/{patient_id}/prescriptions", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
async def prescribe(
    patient_id: int,
    prescription: PrescriptionCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_patient_access(db, actor, PatientOperation.PRESCRIBE, patient_id)
    _load_record(db, patient_id)

    entry = Prescription(
        patient_record_id=patient_id,
        prescribed_by_user_id=actor.id,
        **prescription.model_dump()
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@router.get("/{patient_id}/tests", response_model=List[TestResultResponse])
async def get_tests(
    patient_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_patient_access(db, actor, PatientOperation.VIEW, patient_id)
    return _load_record(db, patient_id).test_results


@router.post("/{patient_id}/tests", response_model=TestResultResponse, status_code=status.HTTP_201_CREATED)
async def add_test_result(
    patient_id: int,
    test_result: TestResultCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    check_patient_access(db, actor, PatientOperation.UPDATE, patient_id)
    _require_staff(actor)
    _load_record(db, patient_id)

    entry = TestResult(patient_record_id=patient_id, **test_result.model_dump())
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry
