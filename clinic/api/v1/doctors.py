from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import BadRequestError
from ...core.security import Actor, RoleName
from ...api.deps import require_role
from ...schemas.doctor import (
    AvailabilityCreate, AvailabilityResponse, DoctorProfileResponse,
    DoctorProfileUpdate, DoctorResponse, SlotResponse,
)
from ...services.doctor_service import DoctorService

router = APIRouter(prefix="/doctors", tags=["Doctors"])

doctor_only = require_role(RoleName.DOCTOR)


@router.get("", response_model=List[DoctorResponse])
async def list_doctors(
    specialization_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """Active doctors, optionally filtered by specialization."""
    return DoctorService(db).list_active(specialization_id)


@router.get("/me", response_model=DoctorProfileResponse)
async def get_my_profile(
    actor: Actor = Depends(doctor_only),
    db: Session = Depends(get_db)
):
    return DoctorService(db).get_profile(actor.id)


@router.put("/me", response_model=DoctorResponse)
async def update_my_profile(
    data: DoctorProfileUpdate,
    actor: Actor = Depends(doctor_only),
    db: Session = Depends(get_db)
):
    return DoctorService(db).update_profile(actor.id, data)


@router.get("/me/availability", response_model=List[AvailabilityResponse])
async def get_my_availability(
    actor: Actor = Depends(doctor_only),
    db: Session = Depends(get_db)
):
    return DoctorService(db).list_availability(actor.id)


@router.post("/me/availability", response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
async def add_my_availability(
    data: AvailabilityCreate,
    actor: Actor = Depends(doctor_only),
    db: Session = Depends(get_db)
):
    return DoctorService(db).add_availability(actor.id, data)


@router.delete("/me/availability/{availability_id}")
async def delete_my_availability(
    availability_id: int,
    actor: Actor = Depends(doctor_only),
    db: Session = Depends(get_db)
):
    DoctorService(db).delete_availability(actor.id, availability_id)
    return {"message": "Availability deleted successfully"}


@router.get("/{doctor_id}/slots", response_model=List[SlotResponse])
async def get_doctor_slots(
    doctor_id: int,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db)
):
    """Bookable 30-minute slots (UTC) for an active doctor between two dates inclusive."""
    if end_date < start_date:
        raise BadRequestError("end_date must not be before start_date")
    if (end_date - start_date).days >= settings.SLOT_QUERY_MAX_DAYS:
        raise BadRequestError(f"Date range may span at most {settings.SLOT_QUERY_MAX_DAYS} days")

    return DoctorService(db).slots(doctor_id, start_date, end_date)
