"""
Notification trigger points for account and consultation events.

Delivery is somebody else's problem: the gateway shipped here only logs.
Callers go through ``dispatch`` so a failing gateway can never undo or fail
the operation that triggered it.
"""
import logging
from typing import Callable

from ..models.consultation import Consultation, ConsultationStatus
from ..models.doctor import Doctor
from ..models.user import User

logger = logging.getLogger(__name__)


class NotificationGateway:
    """Interface for outgoing notifications. Methods may raise; callers use ``dispatch``."""

    def notify_email_confirmation(self, user: User, token: str) -> None:
        raise NotImplementedError

    def notify_booked(self, consultation: Consultation, doctor: Doctor, patient: User) -> None:
        raise NotImplementedError

    def notify_assigned_nurse(self, consultation: Consultation, nurse: User) -> None:
        raise NotImplementedError

    def notify_status_changed(
        self,
        consultation: Consultation,
        old_status: ConsultationStatus,
        new_status: ConsultationStatus,
    ) -> None:
        raise NotImplementedError

    def notify_cancelled(self, consultation: Consultation, cancelled_by: User) -> None:
        raise NotImplementedError


class LoggingNotificationGateway(NotificationGateway):
    def notify_email_confirmation(self, user, token):
        logger.info(f"Email confirmation notice: user {user.id} -> {user.email}")
        logger.debug(f"Confirmation token for user {user.id}: {token}")

    def notify_booked(self, consultation, doctor, patient):
        logger.info(
            f"Booking notice: consultation {consultation.id} with Dr. {doctor.full_name} "
            f"at {consultation.scheduled_at:%Y-%m-%d %H:%M} UTC -> {patient.email}"
        )

    def notify_assigned_nurse(self, consultation, nurse):
        logger.info(f"Nurse assignment notice: consultation {consultation.id} -> {nurse.email}")

    def notify_status_changed(self, consultation, old_status, new_status):
        logger.info(
            f"Status notice: consultation {consultation.id} "
            f"{ConsultationStatus(old_status).value} -> {ConsultationStatus(new_status).value}"
        )

    def notify_cancelled(self, consultation, cancelled_by):
        who = cancelled_by.username if cancelled_by else "System"
        logger.info(f"Cancellation notice: consultation {consultation.id} cancelled by {who}")


def dispatch(send: Callable, *args) -> bool:
    """Call ``send(*args)``; log and swallow any failure. Returns whether it succeeded."""
    try:
        send(*args)
        return True
    except Exception as e:
        logger.warning(f"Notification {getattr(send, '__name__', send)} failed: {e}")
        return False


_default_gateway = LoggingNotificationGateway()


def get_notifier() -> NotificationGateway:
    """FastAPI dependency; override in tests or deployments."""
    return _default_gateway
