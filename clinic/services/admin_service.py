from collections import defaultdict
from datetime import datetime
from typing import Dict, List
import logging

from sqlalchemy.orm import Session

from ..core.exceptions import BadRequestError, ConflictError, NotFoundError
from ..core.security import Actor, RoleName, get_password_hash
from ..models.doctor import Doctor, Specialization
from ..models.patient import PatientRecord, UserPatientAssignment
from ..models.role import Permission, Role, RolePermission, UserRole
from ..models.user import User
from ..schemas.admin import (
    AdminCreateUserRequest, AssignmentRequest, CreateDoctorRequest, RoleCreate,
    RoleResponse, RoleUpdate, SpecializationCreate, SpecializationUpdate,
)

logger = logging.getLogger(__name__)


def role_response(role: Role) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system_role=bool(role.is_system_role),
        created_at=role.created_at,
        permissions=role.permission_names,
    )


class AdminService:
    """Mutations of users, roles, assignments, specializations and doctor profiles."""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def list_users(self, skip: int = 0, limit: int = 50) -> List[User]:
        return self.db.query(User).order_by(User.id).offset(skip).limit(limit).all()

    def create_staff_user(self, actor: Actor, data: AdminCreateUserRequest) -> User:
        if self.db.query(User).filter(
            (User.email == data.email) | (User.username == data.username)
        ).first():
            raise ConflictError("Email or username already registered")

        if RoleName.PATIENT.value in data.roles:
            raise BadRequestError("Patients register themselves")

        roles = self.db.query(Role).filter(Role.name.in_(data.roles)).all()
        if len(roles) != len(set(data.roles)):
            raise BadRequestError("One or more roles are invalid")

        user = User(
            email=data.email,
            username=data.username,
            password_hash=get_password_hash(data.password),
            is_active=True,
            is_verified=True,
        )
        for role in roles:
            user.user_roles.append(UserRole(role=role, assigned_by_user_id=actor.id))

        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Staff user {user.id} created with roles {sorted(data.roles)}")
        return user

    def set_user_active(self, user_id: int, is_active: bool) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        user.is_active = is_active
        self.db.commit()
        return user

    # Roles and permissions

    def list_roles(self) -> List[Role]:
        return self.db.query(Role).order_by(Role.id).all()

    def get_role(self, role_id: int) -> Role:
        role = self.db.get(Role, role_id)
        if not role:
            raise NotFoundError("Role not found")
        return role

    def _resolve_permissions(self, names: List[str]) -> List[Permission]:
        permissions = self.db.query(Permission).filter(Permission.name.in_(names)).all() if names else []
        if len(permissions) != len(set(names)):
            raise BadRequestError("One or more permissions are invalid")
        return permissions

    def create_role(self, data: RoleCreate) -> Role:
        if self.db.query(Role).filter(Role.name == data.name).first():
            raise ConflictError("Role name already exists")

        role = Role(name=data.name, description=data.description, is_system_role=False)
        for permission in self._resolve_permissions(data.permissions):
            role.permissions.append(RolePermission(permission=permission))

        self.db.add(role)
        self.db.commit()
        self.db.refresh(role)
        logger.info(f"Role created: {role.name}")
        return role

    def update_role(self, role_id: int, data: RoleUpdate) -> Role:
        role = self.get_role(role_id)
        if role.is_system_role:
            raise BadRequestError("System roles cannot be modified")

        permissions = self._resolve_permissions(data.permissions)
        if data.description:
            role.description = data.description
        role.permissions.clear()
        self.db.flush()
        for permission in permissions:
            role.permissions.append(RolePermission(permission=permission))
        role.updated_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(role)
        logger.info(f"Role updated: {role.name}")
        return role

    def delete_role(self, role_id: int) -> None:
        role = self.get_role(role_id)
        if role.is_system_role:
            raise BadRequestError("System roles cannot be deleted")
        if role.user_roles:
            raise ConflictError("Cannot delete role that is assigned to users")

        self.db.delete(role)
        self.db.commit()
        logger.info(f"Role deleted: {role.name}")

    def assign_role(self, actor: Actor, user_id: int, role_id: int) -> None:
        user = self.db.get(User, user_id)
        role = self.db.get(Role, role_id)
        if not user or not role:
            raise NotFoundError("User or role not found")

        existing = self.db.query(UserRole).filter(
            UserRole.user_id == user_id, UserRole.role_id == role_id
        ).first()
        if existing:
            raise ConflictError("Role already assigned to user")

        self.db.add(UserRole(user_id=user_id, role_id=role_id, assigned_by_user_id=actor.id))
        self.db.commit()
        logger.info(f"Role {role.name} assigned to user {user_id}")

    def unassign_role(self, user_id: int, role_id: int) -> None:
        link = self.db.query(UserRole).filter(
            UserRole.user_id == user_id, UserRole.role_id == role_id
        ).first()
        if not link:
            raise NotFoundError("Role assignment not found")

        self.db.delete(link)
        self.db.commit()
        logger.info(f"Role {role_id} unassigned from user {user_id}")

    def permissions_by_category(self) -> Dict[str, List[Permission]]:
        grouped = defaultdict(list)
        for permission in self.db.query(Permission).order_by(Permission.category, Permission.name):
            grouped[permission.category].append(permission)
        return dict(grouped)

    # Staff-to-patient assignments

    def list_assignments(self, patient_record_id: int = None) -> List[UserPatientAssignment]:
        query = self.db.query(UserPatientAssignment)
        if patient_record_id is not None:
            query = query.filter(UserPatientAssignment.patient_record_id == patient_record_id)
        return query.order_by(UserPatientAssignment.id).all()

    def create_assignment(self, data: AssignmentRequest) -> UserPatientAssignment:
        user = self.db.get(User, data.user_id)
        if not user:
            raise NotFoundError("User not found")
        if not {RoleName.DOCTOR.value, RoleName.NURSE.value} & set(user.role_names):
            raise BadRequestError("Only doctors and nurses can be assigned to patients")
        if not self.db.get(PatientRecord, data.patient_record_id):
            raise NotFoundError("Patient record not found")

        if self.db.query(UserPatientAssignment).filter(
            UserPatientAssignment.user_id == data.user_id,
            UserPatientAssignment.patient_record_id == data.patient_record_id,
        ).first():
            raise ConflictError("User is already assigned to this patient")

        assignment = UserPatientAssignment(user_id=data.user_id, patient_record_id=data.patient_record_id)
        self.db.add(assignment)
        self.db.commit()
        self.db.refresh(assignment)
        logger.info(f"User {data.user_id} assigned to patient record {data.patient_record_id}")
        return assignment

    def delete_assignment(self, data: AssignmentRequest) -> None:
        assignment = self.db.query(UserPatientAssignment).filter(
            UserPatientAssignment.user_id == data.user_id,
            UserPatientAssignment.patient_record_id == data.patient_record_id,
        ).first()
        if not assignment:
            raise NotFoundError("Assignment not found")

        self.db.delete(assignment)
        self.db.commit()
        logger.info(f"User {data.user_id} unassigned from patient record {data.patient_record_id}")

    # Specializations

    def list_specializations(self) -> List[Specialization]:
        return self.db.query(Specialization).order_by(Specialization.name).all()

    def create_specialization(self, data: SpecializationCreate) -> Specialization:
        if self.db.query(Specialization).filter(Specialization.name == data.name).first():
            raise ConflictError("Specialization already exists")

        specialization = Specialization(name=data.name, description=data.description)
        self.db.add(specialization)
        self.db.commit()
        self.db.refresh(specialization)
        return specialization

    def update_specialization(self, specialization_id: int, data: SpecializationUpdate) -> Specialization:
        specialization = self.db.get(Specialization, specialization_id)
        if not specialization:
            raise NotFoundError("Specialization not found")

        if data.name and data.name != specialization.name:
            if self.db.query(Specialization).filter(Specialization.name == data.name).first():
                raise ConflictError("Specialization already exists")
            specialization.name = data.name
        if data.description is not None:
            specialization.description = data.description

        self.db.commit()
        self.db.refresh(specialization)
        return specialization

    # Doctor profiles

    def create_doctor(self, data: CreateDoctorRequest) -> Doctor:
        user = self.db.get(User, data.user_id)
        if not user:
            raise NotFoundError("User not found")
        if RoleName.DOCTOR.value not in user.role_names:
            raise BadRequestError("User does not hold the Doctor role")
        if self.db.query(Doctor).filter(Doctor.user_id == user.id).first():
            raise ConflictError("User already has a doctor profile")
        if not self.db.get(Specialization, data.specialization_id):
            raise NotFoundError("Specialization not found")

        doctor = Doctor(
            user_id=user.id,
            full_name=data.full_name,
            specialization_id=data.specialization_id,
            consultation_fee=data.consultation_fee,
            years_of_experience=data.years_of_experience,
            bio=data.bio,
            phone_number=data.phone_number,
            is_active=True,
        )
        self.db.add(doctor)
        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Doctor profile {doctor.id} created for user {user.id}")
        return doctor

    def set_doctor_active(self, doctor_id: int, is_active: bool) -> Doctor:
        doctor = self.db.get(Doctor, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")
        doctor.is_active = is_active
        self.db.commit()
        self.db.refresh(doctor)
        logger.info(f"Doctor {doctor.id} {'activated' if is_active else 'deactivated'}")
        return doctor
