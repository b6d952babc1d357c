"""
Doctor availability: slot enumeration and booking validation.

All instants handled here are naive datetimes in UTC, matching what is
stored in ``consultations.scheduled_at``. Intervals are half-open, so an
appointment ending at 09:30 does not collide with one starting at 09:30.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.consultation import CONSULTATION_MINUTES, Consultation, ConsultationStatus
from ..models.doctor import DoctorAvailability

SLOT_LENGTH = timedelta(minutes=CONSULTATION_MINUTES)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    is_available: bool
    booked_count: int
    max_appointments: int


def normalize_to_utc(value: datetime) -> datetime:
    """Coerce ``value`` to a naive UTC datetime.

    Naive values are taken to already be UTC; aware values are converted.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=None)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _window(rule: DoctorAvailability, day: date):
    return datetime.combine(day, rule.start_time), datetime.combine(day, rule.end_time)


def _overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and end > other_start


def get_rules(db: Session, doctor_id: int) -> List[DoctorAvailability]:
    return (
        db.query(DoctorAvailability)
        .filter(DoctorAvailability.doctor_id == doctor_id)
        .order_by(DoctorAvailability.id)
        .all()
    )


def find_matching_rule(db: Session, doctor_id: int, candidate: datetime) -> Optional[DoctorAvailability]:
    """First rule (by id) whose window on the candidate's date fully contains the slot."""
    candidate = normalize_to_utc(candidate)
    end = candidate + SLOT_LENGTH
    day = candidate.date()

    for rule in get_rules(db, doctor_id):
        if not rule.applies_to(day):
            continue
        window_start, window_end = _window(rule, day)
        if window_start <= candidate and end <= window_end:
            return rule
    return None


def _active_bookings(db: Session, doctor_id: int, range_start: datetime, range_end: datetime) -> List[Consultation]:
    return (
        db.query(Consultation)
        .filter(
            Consultation.doctor_id == doctor_id,
            Consultation.status != ConsultationStatus.CANCELLED,
            Consultation.scheduled_at >= range_start,
            Consultation.scheduled_at < range_end,
        )
        .all()
    )


def count_overlapping(db: Session, doctor_id: int, candidate: datetime) -> int:
    """Non-cancelled bookings on the candidate's date that overlap ``[candidate, candidate + 30min)``."""
    candidate = normalize_to_utc(candidate)
    end = candidate + SLOT_LENGTH
    day_start = datetime.combine(candidate.date(), datetime.min.time())

    bookings = _active_bookings(db, doctor_id, day_start, day_start + timedelta(days=1))
    return sum(
        1 for booking in bookings
        if _overlaps(candidate, end, booking.scheduled_at, booking.ends_at)
    )


def is_slot_available(db: Session, doctor_id: int, candidate: datetime) -> bool:
    rule = find_matching_rule(db, doctor_id, candidate)
    if rule is None:
        return False
    return count_overlapping(db, doctor_id, candidate) < rule.max_appointments_per_slot


def enumerate_slots(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date,
    now: Optional[datetime] = None,
) -> List[Slot]:
    """Every 30-minute slot between ``start_date`` and ``end_date`` inclusive.

    Slots starting before ``now`` are dropped. Each slot reports how many
    non-cancelled bookings start inside it.
    """
    now = normalize_to_utc(now) if now is not None else utcnow()
    if end_date < start_date:
        return []

    rules = get_rules(db, doctor_id)
    range_start = datetime.combine(start_date, datetime.min.time())
    range_end = datetime.combine(end_date + timedelta(days=1), datetime.min.time())
    bookings = _active_bookings(db, doctor_id, range_start, range_end)

    slots = []
    day = start_date
    while day <= end_date:
        for rule in rules:
            if not rule.applies_to(day):
                continue
            slot_start, window_end = _window(rule, day)
            while slot_start < window_end:
                slot_end = slot_start + SLOT_LENGTH
                if slot_start >= now:
                    booked = sum(
                        1 for booking in bookings
                        if slot_start <= booking.scheduled_at < slot_end
                    )
                    slots.append(Slot(
                        start=slot_start,
                        end=slot_end,
                        is_available=booked < rule.max_appointments_per_slot,
                        booked_count=booked,
                        max_appointments=rule.max_appointments_per_slot,
                    ))
                slot_start = slot_end
        day += timedelta(days=1)

    slots.sort(key=lambda slot: slot.start)
    return slots
