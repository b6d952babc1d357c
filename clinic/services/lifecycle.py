"""
Consultation status transitions and who may perform them.

    pending -> confirmed -> in_progress -> completed

``cancelled`` and ``no_show`` can be entered from any non-terminal state.
``completed`` and ``cancelled`` are terminal.
"""
from datetime import datetime
from typing import Optional

from ..core.exceptions import ConflictError, ForbiddenError
from ..core.security import Actor, RoleName
from ..models.consultation import Consultation, ConsultationStatus

FORWARD_ORDER = (
    ConsultationStatus.PENDING,
    ConsultationStatus.CONFIRMED,
    ConsultationStatus.IN_PROGRESS,
    ConsultationStatus.COMPLETED,
)

TERMINAL_STATES = frozenset({ConsultationStatus.COMPLETED, ConsultationStatus.CANCELLED})

SIDE_EXITS = frozenset({ConsultationStatus.CANCELLED, ConsultationStatus.NO_SHOW})


def allowed_targets(current: ConsultationStatus) -> frozenset:
    """Statuses reachable from ``current`` in one transition."""
    if current in TERMINAL_STATES:
        return frozenset()
    if current == ConsultationStatus.NO_SHOW:
        return frozenset({ConsultationStatus.CANCELLED})
    position = FORWARD_ORDER.index(current)
    return frozenset(FORWARD_ORDER[position + 1:]) | SIDE_EXITS


def can_transition(current: ConsultationStatus, target: ConsultationStatus) -> bool:
    return target in allowed_targets(current)


def is_assigned_doctor(actor: Actor, consultation: Consultation) -> bool:
    doctor = consultation.doctor
    return (
        actor.has_role(RoleName.DOCTOR)
        and doctor is not None
        and doctor.user_id == actor.id
    )


def is_owning_patient(actor: Actor, consultation: Consultation) -> bool:
    return (
        actor.has_role(RoleName.PATIENT)
        and actor.patient_record_id is not None
        and actor.patient_record_id == consultation.patient_record_id
    )


def can_manage(actor: Actor, consultation: Consultation) -> bool:
    """Assigned doctor or admin: forward moves, completion, no-show, clinical edits."""
    return actor.is_admin or is_assigned_doctor(actor, consultation)


def can_cancel(actor: Actor, consultation: Consultation) -> bool:
    return can_manage(actor, consultation) or is_owning_patient(actor, consultation)


def ensure_can_manage(actor: Actor, consultation: Consultation) -> None:
    if not can_manage(actor, consultation):
        raise ForbiddenError("Only the assigned doctor or an administrator may modify this consultation")


def apply_transition(
    actor: Actor,
    consultation: Consultation,
    target: ConsultationStatus,
    now: Optional[datetime] = None,
) -> ConsultationStatus:
    """Move ``consultation`` to ``target`` in memory and return the old status.

    Does not commit; the caller owns the transaction.
    """
    if target == ConsultationStatus.CANCELLED:
        if not can_cancel(actor, consultation):
            raise ForbiddenError("You are not allowed to cancel this consultation")
    else:
        ensure_can_manage(actor, consultation)

    current = ConsultationStatus(consultation.status)
    if not can_transition(current, target):
        raise ConflictError(
            f"Cannot change consultation status from {current.value} to {target.value}"
        )

    now = now or datetime.utcnow()
    consultation.status = target
    consultation.updated_at = now
    if target == ConsultationStatus.COMPLETED:
        consultation.completed_at = now
    return current
