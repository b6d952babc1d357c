from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from ..core.database import lock_for_write
from ..core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ..core.security import Actor, RoleName
from ..models.consultation import (
    CONSULTATION_MINUTES, Consultation, ConsultationStatus
)
from ..models.doctor import Doctor
from ..models.patient import PatientRecord, UserPatientAssignment
from ..models.role import Role, UserRole
from ..models.user import User
from ..schemas.consultation import (
    BookConsultationRequest, ConsultationSummary, UpdateConsultationRequest
)
from . import lifecycle
from .availability import is_slot_available, normalize_to_utc, utcnow
from .notifications import NotificationGateway, dispatch
from .rbac import primary_role

logger = logging.getLogger(__name__)


class ConsultationService:
    def __init__(self, db: Session, notifier: NotificationGateway):
        self.db = db
        self.notifier = notifier

    def book(self, actor: Actor, request: BookConsultationRequest) -> Consultation:
        """Validate and persist a new consultation.

        The doctor row (the whole database on SQLite) is locked for the rest of
        the transaction, so concurrent bookings for the same doctor re-check
        availability one after another.
        """
        scheduled_at = normalize_to_utc(request.scheduled_at)

        if not actor.is_admin and actor.patient_record_id != request.patient_record_id:
            raise ForbiddenError("You can only book consultations for your own patient record")

        if scheduled_at < utcnow():
            raise BadRequestError("Cannot book a consultation in the past")

        try:
            lock_for_write(self.db)

            record = self.db.query(PatientRecord).filter(
                PatientRecord.id == request.patient_record_id
            ).first()
            if not record:
                raise NotFoundError("Patient record not found")

            doctor = (
                self.db.query(Doctor)
                .filter(Doctor.id == request.doctor_id, Doctor.is_active == True)  # noqa: E712
                .with_for_update()
                .first()
            )
            if not doctor:
                raise NotFoundError("Doctor not found")

            if not is_slot_available(self.db, doctor.id, scheduled_at):
                raise ConflictError("Selected time slot is not available")

            consultation = Consultation(
                patient_record_id=record.id,
                doctor_id=doctor.id,
                scheduled_at=scheduled_at,
                duration_minutes=CONSULTATION_MINUTES,
                consultation_type=request.consultation_type,
                status=ConsultationStatus.PENDING,
                symptoms=request.symptoms,
                fee=doctor.consultation_fee,
            )
            self.db.add(consultation)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(consultation)
        logger.info(f"Consultation {consultation.id} booked by user {actor.id} with doctor {doctor.id} at {scheduled_at}")

        patient_user = record.owner or self.db.get(User, actor.id)
        dispatch(self.notifier.notify_booked, consultation, doctor, patient_user)
        return consultation

    def get(self, actor: Actor, consultation_id: int) -> Consultation:
        consultation = self._load(consultation_id)
        visible = (
            lifecycle.can_cancel(actor, consultation)
            or (actor.has_role(RoleName.NURSE) and consultation.nurse_id == actor.id)
        )
        if not visible:
            raise ForbiddenError("You are not allowed to view this consultation")
        return consultation

    def assign_nurse(self, actor: Actor, consultation_id: int, nurse_id: int) -> Consultation:
        consultation = self._load(consultation_id)
        lifecycle.ensure_can_manage(actor, consultation)

        if consultation.status in lifecycle.TERMINAL_STATES:
            raise ConflictError("Cannot assign a nurse to a closed consultation")

        nurse = (
            self.db.query(User)
            .join(UserRole, UserRole.user_id == User.id)
            .join(Role, Role.id == UserRole.role_id)
            .filter(User.id == nurse_id, Role.name == RoleName.NURSE.value)
            .first()
        )
        if not nurse:
            raise NotFoundError("Nurse not found")

        consultation.nurse_id = nurse.id
        consultation.updated_at = datetime.utcnow()

        existing = self.db.query(UserPatientAssignment).filter(
            UserPatientAssignment.user_id == nurse.id,
            UserPatientAssignment.patient_record_id == consultation.patient_record_id,
        ).first()
        if not existing:
            self.db.add(UserPatientAssignment(
                user_id=nurse.id,
                patient_record_id=consultation.patient_record_id,
            ))

        self.db.commit()
        self.db.refresh(consultation)
        logger.info(f"Nurse {nurse.id} assigned to consultation {consultation.id}")

        dispatch(self.notifier.notify_assigned_nurse, consultation, nurse)
        return consultation

    def update_status(self, actor: Actor, consultation_id: int, target: ConsultationStatus) -> Consultation:
        if target == ConsultationStatus.CANCELLED:
            return self.cancel(actor, consultation_id)

        consultation = self._load(consultation_id)
        old_status = lifecycle.apply_transition(actor, consultation, target)
        self.db.commit()
        self.db.refresh(consultation)

        logger.info(f"Consultation {consultation.id} status updated from {old_status.value} to {target.value}")
        dispatch(self.notifier.notify_status_changed, consultation, old_status, target)
        return consultation

    def update_clinical(self, actor: Actor, consultation_id: int, request: UpdateConsultationRequest) -> Consultation:
        """Edit diagnosis, treatment plan and notes, optionally with a status change, in one commit."""
        consultation = self._load(consultation_id)
        lifecycle.ensure_can_manage(actor, consultation)

        now = datetime.utcnow()
        updates = []
        provided = request.model_dump(exclude_unset=True)
        for field in ("diagnosis", "treatment_plan", "notes"):
            if field not in provided:
                continue
            value = provided[field]
            if value != getattr(consultation, field):
                setattr(consultation, field, value)
                updates.append(field)

        old_status = None
        if request.status is not None and request.status != consultation.status:
            old_status = lifecycle.apply_transition(actor, consultation, request.status, now=now)
            updates.append(f"status to {request.status.value}")

        consultation.updated_at = now
        self.db.commit()
        self.db.refresh(consultation)

        logger.info(f"Consultation {consultation.id} updated: {', '.join(updates) or 'no changes'}")
        if old_status is not None:
            if request.status == ConsultationStatus.CANCELLED:
                dispatch(self.notifier.notify_cancelled, consultation, self.db.get(User, actor.id))
            else:
                dispatch(self.notifier.notify_status_changed, consultation, old_status, request.status)
        return consultation

    def cancel(self, actor: Actor, consultation_id: int) -> Consultation:
        consultation = self._load(consultation_id)
        lifecycle.apply_transition(actor, consultation, ConsultationStatus.CANCELLED)
        self.db.commit()
        self.db.refresh(consultation)

        logger.info(f"Consultation {consultation.id} cancelled by user {actor.id}")
        dispatch(self.notifier.notify_cancelled, consultation, self.db.get(User, actor.id))
        return consultation

    def list_for_actor(self, actor: Actor) -> List[ConsultationSummary]:
        """Consultations relevant to the caller, chosen by their primary role."""
        query = self.db.query(Consultation)
        role = primary_role(actor.roles)

        if role == RoleName.DOCTOR:
            doctor = self.db.query(Doctor).filter(Doctor.user_id == actor.id).first()
            if not doctor:
                return []
            query = query.filter(Consultation.doctor_id == doctor.id)
        elif role == RoleName.NURSE:
            query = query.filter(Consultation.nurse_id == actor.id)
        elif role == RoleName.PATIENT:
            if actor.patient_record_id is None:
                return []
            query = query.filter(Consultation.patient_record_id == actor.patient_record_id)

        consultations = query.order_by(Consultation.scheduled_at.desc()).all()
        return [self._summary(c) for c in consultations]

    def _load(self, consultation_id: int) -> Consultation:
        consultation = self.db.get(Consultation, consultation_id)
        if not consultation:
            raise NotFoundError("Consultation not found")
        return consultation

    @staticmethod
    def _summary(consultation: Consultation) -> ConsultationSummary:
        nurse: Optional[User] = consultation.nurse
        return ConsultationSummary(
            id=consultation.id,
            scheduled_at=consultation.scheduled_at,
            duration_minutes=consultation.duration_minutes,
            consultation_type=consultation.consultation_type,
            status=consultation.status,
            fee=consultation.fee,
            doctor_name=consultation.doctor.full_name,
            specialization=consultation.doctor.specialization_name,
            patient_name=consultation.patient_record.full_name,
            nurse_name=nurse.username if nurse else None,
        )
