from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Date, Time, Boolean, Text, Numeric, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class Specialization(Base):
    __tablename__ = "specializations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    doctors = relationship("Doctor", back_populates="specialization")

    def __repr__(self):
        return f"<Specialization(id={self.id}, name='{self.name}')>"

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # Professional information
    full_name = Column(String(100), nullable=False)
    specialization_id = Column(Integer, ForeignKey("specializations.id"), nullable=False)
    years_of_experience = Column(Integer, default=0)
    bio = Column(Text, nullable=True)
    phone_number = Column(String(20), nullable=True)
    consultation_fee = Column(Numeric(10, 2), nullable=False, default=0)

    # Inactive doctors are hidden from listings and booking
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    specialization = relationship("Specialization", back_populates="doctors")
    availabilities = relationship(
        "DoctorAvailability",
        back_populates="doctor",
        cascade="all, delete-orphan",
        order_by="DoctorAvailability.id",
    )
    consultations = relationship("Consultation", back_populates="doctor")

    @property
    def specialization_name(self):
        return self.specialization.name if self.specialization else None

    def __repr__(self):
        return f"<Doctor(id={self.id}, name='{self.full_name}')>"

class DoctorAvailability(Base):
    """A recurring (weekly) or one-off window in which a doctor takes bookings.

    Times are UTC times of day. ``day_of_week`` uses Python's convention
    (Monday == 0) and is derived from ``specific_date`` for one-off rules.
    """
    __tablename__ = "doctor_availabilities"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_availability_window"),
        CheckConstraint("max_appointments_per_slot >= 1", name="ck_availability_capacity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_recurring = Column(Boolean, default=True, nullable=False)
    specific_date = Column(Date, nullable=True)
    max_appointments_per_slot = Column(Integer, default=1, nullable=False)

    doctor = relationship("Doctor", back_populates="availabilities")

    def applies_to(self, day) -> bool:
        """Whether this rule covers the given calendar date."""
        if self.is_recurring:
            return self.day_of_week == day.weekday()
        return self.specific_date == day

    def __repr__(self):
        when = f"weekday={self.day_of_week}" if self.is_recurring else f"date={self.specific_date}"
        return f"<DoctorAvailability(id={self.id}, doctor_id={self.doctor_id}, {when}, {self.start_time}-{self.end_time})>"
