from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from ..core.exceptions import BadRequestError, ConflictError, NotFoundError
from ..models.doctor import Doctor, DoctorAvailability, Specialization
from ..schemas.doctor import AvailabilityCreate, DoctorProfileUpdate
from .availability import Slot, enumerate_slots

logger = logging.getLogger(__name__)


class DoctorService:
    def __init__(self, db: Session):
        self.db = db

    def list_active(self, specialization_id: Optional[int] = None) -> List[Doctor]:
        query = self.db.query(Doctor).filter(Doctor.is_active == True)  # noqa: E712
        if specialization_id is not None:
            query = query.filter(Doctor.specialization_id == specialization_id)
        return query.order_by(Doctor.full_name).all()

    def get_profile(self, user_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.user_id == user_id).first()
        if not doctor:
            raise NotFoundError("Doctor profile not found")
        return doctor

    def update_profile(self, user_id: int, data: DoctorProfileUpdate) -> Doctor:
        doctor = self.get_profile(user_id)

        if data.specialization_id is not None:
            if not self.db.get(Specialization, data.specialization_id):
                raise BadRequestError("Invalid specialization")
            doctor.specialization_id = data.specialization_id

        for field in ("full_name", "phone_number", "bio", "years_of_experience", "consultation_fee"):
            value = getattr(data, field)
            if value is not None:
                setattr(doctor, field, value)

        # Existing consultations keep the fee they were booked with
        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Doctor profile {doctor.id} updated")
        return doctor

    def list_availability(self, user_id: int) -> List[DoctorAvailability]:
        return self.get_profile(user_id).availabilities

    def add_availability(self, user_id: int, data: AvailabilityCreate) -> DoctorAvailability:
        doctor = self.get_profile(user_id)

        if data.is_recurring:
            day_of_week = data.day_of_week
            specific_date = None
        else:
            specific_date = data.specific_date
            day_of_week = specific_date.weekday()

        duplicate = self.db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == doctor.id,
            DoctorAvailability.is_recurring == data.is_recurring,
            DoctorAvailability.start_time == data.start_time,
        )
        if data.is_recurring:
            duplicate = duplicate.filter(DoctorAvailability.day_of_week == day_of_week)
        else:
            duplicate = duplicate.filter(DoctorAvailability.specific_date == specific_date)
        if duplicate.first():
            raise ConflictError("An availability rule already starts at this time on that day")

        rule = DoctorAvailability(
            doctor_id=doctor.id,
            day_of_week=day_of_week,
            specific_date=specific_date,
            is_recurring=data.is_recurring,
            start_time=data.start_time,
            end_time=data.end_time,
            max_appointments_per_slot=data.max_appointments_per_slot,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        logger.info(f"Availability {rule.id} added for doctor {doctor.id}")
        return rule

    def delete_availability(self, user_id: int, availability_id: int) -> None:
        doctor = self.get_profile(user_id)
        rule = self.db.query(DoctorAvailability).filter(
            DoctorAvailability.id == availability_id,
            DoctorAvailability.doctor_id == doctor.id,
        ).first()
        if not rule:
            raise NotFoundError("Availability not found")

        self.db.delete(rule)
        self.db.commit()
        logger.info(f"Availability {availability_id} removed for doctor {doctor.id}")

    def slots(self, doctor_id: int, start_date: date, end_date: date) -> List[Slot]:
        doctor = self.db.query(Doctor).filter(
            Doctor.id == doctor_id, Doctor.is_active == True  # noqa: E712
        ).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return enumerate_slots(self.db, doctor.id, start_date, end_date)
