"""
Resource-scoped authorization for patient records.

``authorize`` is a pure function over the actor, the operation and the
target record; the only stored fact it needs (whether the actor is assigned
to the record) is looked up by ``check_patient_access`` and passed in.
"""
import enum
import logging

from sqlalchemy.orm import Session

from ..core.exceptions import ForbiddenError
from ..core.security import Actor, RoleName
from ..models.patient import UserPatientAssignment

logger = logging.getLogger(__name__)


class PatientOperation(str, enum.Enum):
    VIEW = "view"
    UPDATE = "update"
    PRESCRIBE = "prescribe"


class Decision(str, enum.Enum):
    PERMIT = "permit"
    FORBIDDEN = "forbidden"


def authorize(
    actor: Actor,
    operation: PatientOperation,
    patient_record_id: int,
    is_assigned: bool = False,
) -> Decision:
    """Decide whether ``actor`` may perform ``operation`` on a patient record.

    Rules are evaluated in order and the first match wins:

    1. SuperAdmin may do anything.
    2. Doctors may view, update and prescribe on any record.
    3. Nurses may view and update records they are assigned to, never prescribe.
    4. Patients may view their own record only.
    5. Everyone else is denied.
    """
    if actor.has_role(RoleName.SUPER_ADMIN):
        return Decision.PERMIT

    if actor.has_role(RoleName.DOCTOR):
        return Decision.PERMIT

    if actor.has_role(RoleName.NURSE) and is_assigned and operation in (
        PatientOperation.VIEW,
        PatientOperation.UPDATE,
    ):
        return Decision.PERMIT

    if (
        actor.has_role(RoleName.PATIENT)
        and operation == PatientOperation.VIEW
        and actor.patient_record_id is not None
        and actor.patient_record_id == patient_record_id
    ):
        return Decision.PERMIT

    return Decision.FORBIDDEN


def is_assigned(db: Session, user_id: int, patient_record_id: int) -> bool:
    return (
        db.query(UserPatientAssignment.id)
        .filter(
            UserPatientAssignment.user_id == user_id,
            UserPatientAssignment.patient_record_id == patient_record_id,
        )
        .first()
        is not None
    )


def check_patient_access(
    db: Session,
    actor: Actor,
    operation: PatientOperation,
    patient_record_id: int,
) -> None:
    """Raise ``ForbiddenError`` unless ``actor`` may perform ``operation``.

    Runs before the record is loaded so a denied caller learns nothing about
    whether the record exists.
    """
    assigned = False
    if actor.has_role(RoleName.NURSE):
        assigned = is_assigned(db, actor.id, patient_record_id)

    decision = authorize(actor, operation, patient_record_id, assigned)
    if decision != Decision.PERMIT:
        logger.info(
            f"Denied {operation.value} on patient record {patient_record_id} for user {actor.id}"
        )
        raise ForbiddenError("You are not allowed to access this patient record")
