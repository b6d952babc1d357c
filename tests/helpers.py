"""Builders for rows the tests need, written straight to the database."""
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from clinic.core.config import settings
from clinic.core.security import Actor, RoleName, get_password_hash
from clinic.models.consultation import Consultation, ConsultationStatus, ConsultationType
from clinic.models.doctor import Doctor, DoctorAvailability, Specialization
from clinic.models.patient import PatientRecord
from clinic.models.role import Role, UserRole
from clinic.models.user import User

PASSWORD = "TestPassword123"

# Hash once; bcrypt is deliberately slow
PASSWORD_HASH = get_password_hash(PASSWORD)


def next_monday() -> date:
    """A Monday at least a week from today, so its slots are never in the past."""
    today = date.today()
    return today + timedelta(days=7 + (-today.weekday()) % 7)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def create_user(db, email, roles=(), patient_record=None):
    user = User(
        email=email,
        username=email.split("@")[0],
        password_hash=PASSWORD_HASH,
        is_active=True,
        is_verified=True,
        patient_record_id=patient_record.id if patient_record else None,
    )
    for name in roles:
        role = db.query(Role).filter(Role.name == name).one()
        user.user_roles.append(UserRole(role=role))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_patient(db, email="patient@example.com", full_name="Pat Jones"):
    """A patient account and the record it owns."""
    record = PatientRecord(full_name=full_name)
    db.add(record)
    db.commit()
    db.refresh(record)
    user = create_user(db, email, [RoleName.PATIENT.value], patient_record=record)
    return user, record


def create_nurse(db, email="nurse@example.com"):
    return create_user(db, email, [RoleName.NURSE.value])


def create_doctor(db, email="doctor@example.com", full_name="Dr. Ada Grey", fee=Decimal("150.00")):
    specialization = db.query(Specialization).filter(Specialization.name == "General Practice").first()
    if not specialization:
        specialization = Specialization(name="General Practice")
        db.add(specialization)
        db.commit()

    user = create_user(db, email, [RoleName.DOCTOR.value])
    doctor = Doctor(
        user_id=user.id,
        full_name=full_name,
        specialization_id=specialization.id,
        consultation_fee=fee,
        is_active=True,
    )
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


def add_rule(db, doctor, day_of_week=0, start=time(9, 0), end=time(17, 0), max_appointments=1, specific_date=None):
    rule = DoctorAvailability(
        doctor_id=doctor.id,
        day_of_week=specific_date.weekday() if specific_date else day_of_week,
        start_time=start,
        end_time=end,
        is_recurring=specific_date is None,
        specific_date=specific_date,
        max_appointments_per_slot=max_appointments,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    return rule


def add_consultation(db, doctor, record, scheduled_at, status=ConsultationStatus.PENDING):
    consultation = Consultation(
        patient_record_id=record.id,
        doctor_id=doctor.id,
        scheduled_at=scheduled_at,
        duration_minutes=30,
        consultation_type=ConsultationType.IN_PERSON,
        status=status,
        fee=doctor.consultation_fee,
    )
    db.add(consultation)
    db.commit()
    db.refresh(consultation)
    return consultation


def actor_for(user) -> Actor:
    return Actor(
        id=user.id,
        roles=frozenset(user.role_names),
        patient_record_id=user.patient_record_id,
        email=user.email,
    )


def auth_headers(client, email, password=PASSWORD) -> dict:
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def admin_headers(client) -> dict:
    """Log in as the administrator created by the startup seed."""
    return auth_headers(client, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
