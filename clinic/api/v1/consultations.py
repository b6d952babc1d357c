from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Actor, RoleName
from ...api.deps import get_current_actor, require_role
from ...schemas.consultation import (
    AssignNurseRequest, BookConsultationRequest, BookingResponse,
    ConsultationResponse, ConsultationSummary, UpdateConsultationRequest,
    UpdateStatusRequest,
)
from ...services.consultation_service import ConsultationService
from ...services.notifications import NotificationGateway, get_notifier

router = APIRouter(prefix="/consultations", tags=["Consultations"])


def get_consultation_service(
    db: Session = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier)
) -> ConsultationService:
    return ConsultationService(db, notifier)


@router.post("/book", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def book_consultation(
    request: BookConsultationRequest,
    actor: Actor = Depends(require_role(RoleName.PATIENT, RoleName.SUPER_ADMIN)),
    service: ConsultationService = Depends(get_consultation_service)
):
    """Book a 30-minute consultation. The slot is re-validated at write time."""
    consultation = service.book(actor, request)
    return BookingResponse(consultation_id=consultation.id, scheduled_at=consultation.scheduled_at)


@router.get("/mine", response_model=List[ConsultationSummary])
async def my_consultations(
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    return service.list_for_actor(actor)


@router.get("/{consultation_id}", response_model=ConsultationResponse)
async def get_consultation(
    consultation_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    return service.get(actor, consultation_id)


@router.post("/{consultation_id}/assign-nurse", response_model=ConsultationResponse)
async def assign_nurse(
    consultation_id: int,
    request: AssignNurseRequest,
    actor: Actor = Depends(require_role(RoleName.DOCTOR, RoleName.SUPER_ADMIN)),
    service: ConsultationService = Depends(get_consultation_service)
):
    """Attach a nurse; also grants the nurse access to the patient's record."""
    return service.assign_nurse(actor, consultation_id, request.nurse_id)


@router.put("/{consultation_id}/status", response_model=ConsultationResponse)
async def update_status(
    consultation_id: int,
    request: UpdateStatusRequest,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    return service.update_status(actor, consultation_id, request.status)


@router.put("/{consultation_id}", response_model=ConsultationResponse)
async def update_consultation(
    consultation_id: int,
    request: UpdateConsultationRequest,
    actor: Actor = Depends(require_role(RoleName.DOCTOR, RoleName.SUPER_ADMIN)),
    service: ConsultationService = Depends(get_consultation_service)
):
    """Clinical notes, diagnosis and treatment plan; may also change status in the same commit."""
    return service.update_clinical(actor, consultation_id, request)


@router.post("/{consultation_id}/cancel", response_model=ConsultationResponse)
async def cancel_consultation(
    consultation_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ConsultationService = Depends(get_consultation_service)
):
    return service.cancel(actor, consultation_id)
