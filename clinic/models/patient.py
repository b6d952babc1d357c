from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class PatientRecord(Base):
    __tablename__ = "patient_records"

    id = Column(Integer, primary_key=True, index=True)

    # Personal information
    full_name = Column(String(200), nullable=False)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    phone_number = Column(String(20), nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="patient_record", uselist=False)
    consultations = relationship("Consultation", back_populates="patient_record")
    vitals = relationship("Vital", back_populates="patient_record", order_by="Vital.recorded_at")
    prescriptions = relationship("Prescription", back_populates="patient_record", order_by="Prescription.created_at")
    test_results = relationship("TestResult", back_populates="patient_record", order_by="TestResult.created_at")
    assignments = relationship("UserPatientAssignment", back_populates="patient_record")

    def __repr__(self):
        return f"<PatientRecord(id={self.id}, name='{self.full_name}')>"

class UserPatientAssignment(Base):
    """Explicit grant of elevated access to a patient record for a staff user."""
    __tablename__ = "user_patient_assignments"
    __table_args__ = (UniqueConstraint("user_id", "patient_record_id", name="uq_user_patient_assignment"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    patient_record_id = Column(Integer, ForeignKey("patient_records.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User")
    patient_record = relationship("PatientRecord", back_populates="assignments")

    def __repr__(self):
        return f"<UserPatientAssignment(user_id={self.user_id}, patient_record_id={self.patient_record_id})>"

class Vital(Base):
    __tablename__ = "vitals"

    id = Column(Integer, primary_key=True, index=True)
    patient_record_id = Column(Integer, ForeignKey("patient_records.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # e.g. BP, Temp
    value = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    recorded_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    recorded_at = Column(DateTime, server_default=func.now())

    patient_record = relationship("PatientRecord", back_populates="vitals")

class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    patient_record_id = Column(Integer, ForeignKey("patient_records.id"), nullable=False, index=True)
    medication = Column(String(200), nullable=False)
    dosage = Column(String(200), nullable=False)
    prescribed_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    patient_record = relationship("PatientRecord", back_populates="prescriptions")

class TestResult(Base):
    __tablename__ = "test_results"

    id = Column(Integer, primary_key=True, index=True)
    patient_record_id = Column(Integer, ForeignKey("patient_records.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    result = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    patient_record = relationship("PatientRecord", back_populates="test_results")
