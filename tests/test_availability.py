from datetime import datetime, time, timedelta, timezone
import threading
import time as clock

import pytest
from sqlalchemy.orm import sessionmaker

from clinic.core.exceptions import BadRequestError, ConflictError
from clinic.models.consultation import Consultation, ConsultationStatus
from clinic.schemas.consultation import BookConsultationRequest
from clinic.services.availability import (
    count_overlapping, enumerate_slots, find_matching_rule, is_slot_available, normalize_to_utc
)
from clinic.services import consultation_service
from clinic.services.consultation_service import ConsultationService
from clinic.services.notifications import LoggingNotificationGateway
from tests.helpers import (
    actor_for, add_consultation, add_rule, at, create_doctor, create_patient, next_monday
)


@pytest.fixture
def clinic(db):
    """A doctor working Mondays 09:00-17:00 with one patient per slot, and a patient."""
    doctor = create_doctor(db)
    add_rule(db, doctor, day_of_week=0, start=time(9, 0), end=time(17, 0), max_appointments=1)
    patient_user, record = create_patient(db)
    return doctor, patient_user, record


def book(db, patient_user, record, doctor, scheduled_at):
    service = ConsultationService(db, LoggingNotificationGateway())
    request = BookConsultationRequest(
        patient_record_id=record.id, doctor_id=doctor.id, scheduled_at=scheduled_at
    )
    return service.book(actor_for(patient_user), request)


class TestNormalizeToUtc:

    def test_naive_is_taken_as_utc(self):
        value = datetime(2030, 1, 7, 9, 0)
        assert normalize_to_utc(value) == value

    def test_aware_is_converted(self):
        value = datetime(2030, 1, 7, 11, 0, tzinfo=timezone(timedelta(hours=2)))
        assert normalize_to_utc(value) == datetime(2030, 1, 7, 9, 0)
        assert normalize_to_utc(value).tzinfo is None


class TestSlotAvailability:

    def test_utc_naive_and_offset_inputs_agree(self, db, clinic):
        doctor, _, record = clinic
        monday = next_monday()
        naive = at(monday, 9)
        utc = naive.replace(tzinfo=timezone.utc)
        offset = (naive + timedelta(hours=2)).replace(tzinfo=timezone(timedelta(hours=2)))

        assert is_slot_available(db, doctor.id, naive)
        assert is_slot_available(db, doctor.id, utc)
        assert is_slot_available(db, doctor.id, offset)

        add_consultation(db, doctor, record, naive)

        assert not is_slot_available(db, doctor.id, naive)
        assert not is_slot_available(db, doctor.id, utc)
        assert not is_slot_available(db, doctor.id, offset)

    def test_slot_must_fit_inside_a_rule(self, db, clinic):
        doctor, _, _ = clinic
        monday = next_monday()

        assert not is_slot_available(db, doctor.id, at(monday, 8, 30))
        assert is_slot_available(db, doctor.id, at(monday, 16, 30))
        # Would run past 17:00
        assert not is_slot_available(db, doctor.id, at(monday, 16, 45))
        # Tuesday has no rule
        assert not is_slot_available(db, doctor.id, at(monday + timedelta(days=1), 9))

    def test_half_open_boundaries(self, db, clinic):
        doctor, _, record = clinic
        monday = next_monday()
        add_consultation(db, doctor, record, at(monday, 10))

        # Starts exactly when the existing one ends
        assert is_slot_available(db, doctor.id, at(monday, 10, 30))
        # Ends exactly when the existing one starts
        assert is_slot_available(db, doctor.id, at(monday, 9, 30))
        # Partial overlap
        assert not is_slot_available(db, doctor.id, at(monday, 10, 15))
        assert count_overlapping(db, doctor.id, at(monday, 10, 15)) == 1

    def test_cancelled_bookings_do_not_count(self, db, clinic):
        doctor, _, record = clinic
        monday = next_monday()
        add_consultation(db, doctor, record, at(monday, 9), status=ConsultationStatus.CANCELLED)

        assert is_slot_available(db, doctor.id, at(monday, 9))

    def test_capacity_above_one(self, db):
        doctor = create_doctor(db)
        add_rule(db, doctor, day_of_week=0, max_appointments=2)
        _, record = create_patient(db)
        monday = next_monday()

        add_consultation(db, doctor, record, at(monday, 9))
        assert is_slot_available(db, doctor.id, at(monday, 9))

        add_consultation(db, doctor, record, at(monday, 9))
        assert not is_slot_available(db, doctor.id, at(monday, 9))

    def test_first_matching_rule_supplies_capacity(self, db):
        doctor = create_doctor(db)
        first = add_rule(db, doctor, day_of_week=0, start=time(9), end=time(12), max_appointments=1)
        add_rule(db, doctor, day_of_week=0, start=time(8), end=time(13), max_appointments=3)
        monday = next_monday()

        assert find_matching_rule(db, doctor.id, at(monday, 10)).id == first.id
        assert find_matching_rule(db, doctor.id, at(monday, 8)).max_appointments_per_slot == 3

    def test_one_off_rule(self, db):
        doctor = create_doctor(db)
        tuesday = next_monday() + timedelta(days=1)
        add_rule(db, doctor, start=time(14), end=time(15), specific_date=tuesday)

        assert is_slot_available(db, doctor.id, at(tuesday, 14))
        assert is_slot_available(db, doctor.id, at(tuesday, 14, 30))
        assert not is_slot_available(db, doctor.id, at(tuesday, 15))
        assert not is_slot_available(db, doctor.id, at(tuesday + timedelta(days=7), 14))


class TestEnumerateSlots:

    def test_slots_within_rule(self, db):
        doctor = create_doctor(db)
        add_rule(db, doctor, day_of_week=0, start=time(9), end=time(10))
        monday = next_monday()

        slots = enumerate_slots(db, doctor.id, monday, monday + timedelta(days=6))

        assert [slot.start for slot in slots] == [at(monday, 9), at(monday, 9, 30)]
        assert all(slot.end - slot.start == timedelta(minutes=30) for slot in slots)
        assert all(slot.is_available for slot in slots)

    def test_booked_slot_reports_count(self, db):
        doctor = create_doctor(db)
        add_rule(db, doctor, day_of_week=0, start=time(9), end=time(10))
        _, record = create_patient(db)
        monday = next_monday()
        add_consultation(db, doctor, record, at(monday, 9))

        first, second = enumerate_slots(db, doctor.id, monday, monday)

        assert first.booked_count == 1
        assert not first.is_available
        assert second.booked_count == 0
        assert second.is_available

    def test_past_slots_are_dropped(self, db):
        doctor = create_doctor(db)
        add_rule(db, doctor, day_of_week=0, start=time(9), end=time(10))
        monday = next_monday()

        slots = enumerate_slots(db, doctor.id, monday, monday, now=at(monday, 9, 10))

        assert [slot.start for slot in slots] == [at(monday, 9, 30)]

    def test_sorted_across_rules_and_days(self, db):
        doctor = create_doctor(db)
        monday = next_monday()
        add_rule(db, doctor, day_of_week=1, start=time(8), end=time(8, 30))
        add_rule(db, doctor, day_of_week=0, start=time(15), end=time(15, 30))
        add_rule(db, doctor, day_of_week=0, start=time(9), end=time(9, 30))

        slots = enumerate_slots(db, doctor.id, monday, monday + timedelta(days=1))

        assert [slot.start for slot in slots] == [
            at(monday, 9), at(monday, 15), at(monday + timedelta(days=1), 8)
        ]

    def test_inverted_range_is_empty(self, db):
        doctor = create_doctor(db)
        add_rule(db, doctor, day_of_week=0)
        monday = next_monday()

        assert enumerate_slots(db, doctor.id, monday, monday - timedelta(days=1)) == []


class TestBooking:

    def test_monday_scenario(self, db, clinic):
        doctor, patient_user, record = clinic
        monday = next_monday()

        first = book(db, patient_user, record, doctor, at(monday, 9))
        assert first.id is not None
        assert first.status == ConsultationStatus.PENDING

        with pytest.raises(ConflictError):
            book(db, patient_user, record, doctor, at(monday, 9))

        assert book(db, patient_user, record, doctor, at(monday, 9, 30)).id != first.id

    def test_booking_rechecks_availability(self, db, clinic):
        doctor, patient_user, record = clinic
        monday = next_monday()
        book(db, patient_user, record, doctor, at(monday, 11))

        assert not is_slot_available(db, doctor.id, at(monday, 11))

    def test_offset_aware_booking_is_stored_as_utc(self, db, clinic):
        doctor, patient_user, record = clinic
        monday = next_monday()
        local = datetime.combine(monday, time(6, 0), tzinfo=timezone(timedelta(hours=-5)))

        consultation = book(db, patient_user, record, doctor, local)

        assert consultation.scheduled_at == at(monday, 11)

    def test_cancelling_frees_the_slot(self, db, clinic):
        doctor, patient_user, record = clinic
        monday = next_monday()
        service = ConsultationService(db, LoggingNotificationGateway())

        consultation = book(db, patient_user, record, doctor, at(monday, 9))
        service.cancel(actor_for(patient_user), consultation.id)

        assert is_slot_available(db, doctor.id, at(monday, 9))
        assert book(db, patient_user, record, doctor, at(monday, 9)).id != consultation.id

    def test_fee_is_copied_from_doctor(self, db, clinic):
        doctor, patient_user, record = clinic
        consultation = book(db, patient_user, record, doctor, at(next_monday(), 9))
        assert consultation.fee == doctor.consultation_fee

    def test_cannot_book_in_the_past(self, db, clinic):
        doctor, patient_user, record = clinic
        last_monday = next_monday() - timedelta(days=21)

        with pytest.raises(BadRequestError):
            book(db, patient_user, record, doctor, at(last_monday, 9))

    def test_concurrent_bookings_cannot_overfill_a_slot(self, db, clinic, monkeypatch):
        doctor, patient_user, record = clinic
        actor = actor_for(patient_user)
        request = BookConsultationRequest(
            patient_record_id=record.id, doctor_id=doctor.id, scheduled_at=at(next_monday(), 9)
        )
        make_session = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())

        # Both callers would pass the check if the second one did not wait for the first
        def slow_check(*args, **kwargs):
            available = is_slot_available(*args, **kwargs)
            clock.sleep(0.3)
            return available

        monkeypatch.setattr(consultation_service, "is_slot_available", slow_check)

        start = threading.Barrier(2)
        results = []

        def attempt():
            session = make_session()
            try:
                start.wait()
                ConsultationService(session, LoggingNotificationGateway()).book(actor, request)
                results.append("booked")
            except ConflictError:
                results.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == ["booked", "conflict"]
        assert db.query(Consultation).filter(Consultation.doctor_id == doctor.id).count() == 1
