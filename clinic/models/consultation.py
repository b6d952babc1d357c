from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Text, Index, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import timedelta
import enum

from ..core.database import Base

CONSULTATION_MINUTES = 30

class ConsultationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

class ConsultationType(str, enum.Enum):
    IN_PERSON = "in_person"
    VIDEO = "video"
    PHONE = "phone"

class Consultation(Base):
    __tablename__ = "consultations"
    __table_args__ = (
        Index("ix_consultations_doctor_scheduled", "doctor_id", "scheduled_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_record_id = Column(Integer, ForeignKey("patient_records.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    nurse_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Scheduling; scheduled_at is always naive UTC
    scheduled_at = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False, default=CONSULTATION_MINUTES)
    consultation_type = Column(SQLEnum(ConsultationType), nullable=False)
    status = Column(SQLEnum(ConsultationStatus), nullable=False, default=ConsultationStatus.PENDING)

    # Clinical details
    symptoms = Column(String(1000), nullable=True)
    diagnosis = Column(String(1000), nullable=True)
    treatment_plan = Column(String(1000), nullable=True)
    notes = Column(Text, nullable=True)

    # Copied from the doctor at booking time
    fee = Column(Numeric(10, 2), nullable=False, default=0)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    patient_record = relationship("PatientRecord", back_populates="consultations")
    doctor = relationship("Doctor", back_populates="consultations")
    nurse = relationship("User", foreign_keys=[nurse_id])

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def __repr__(self):
        return f"<Consultation(id={self.id}, patient_record_id={self.patient_record_id}, doctor_id={self.doctor_id}, at='{self.scheduled_at}')>"
