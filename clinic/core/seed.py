"""
Idempotent bootstrap data: permission catalogue, system roles, first admin.
"""
import logging

from sqlalchemy.orm import Session

from .config import settings
from .security import RoleName, get_password_hash
from ..models.role import Permission, Role, RolePermission, UserRole
from ..models.user import User

logger = logging.getLogger(__name__)

PERMISSIONS = [
    ("users.view", "View users", "Users"),
    ("users.create", "Create users", "Users"),
    ("users.edit", "Edit users", "Users"),
    ("users.delete", "Delete users", "Users"),
    ("roles.view", "View roles", "Roles"),
    ("roles.create", "Create roles", "Roles"),
    ("roles.edit", "Edit roles", "Roles"),
    ("roles.delete", "Delete roles", "Roles"),
    ("patients.view", "View patients", "Patients"),
    ("patients.create", "Create patients", "Patients"),
    ("patients.edit", "Edit patients", "Patients"),
    ("patients.delete", "Delete patients", "Patients"),
    ("prescriptions.create", "Create prescriptions", "Prescriptions"),
    ("prescriptions.view", "View prescriptions", "Prescriptions"),
    ("prescriptions.edit", "Edit prescriptions", "Prescriptions"),
    ("vitals.create", "Create vitals", "Vitals"),
    ("vitals.view", "View vitals", "Vitals"),
    ("vitals.edit", "Edit vitals", "Vitals"),
    ("testresults.create", "Create test results", "TestResults"),
    ("testresults.view", "View test results", "TestResults"),
    ("testresults.edit", "Edit test results", "TestResults"),
]

SYSTEM_ROLE_PERMISSIONS = {
    RoleName.SUPER_ADMIN: [name for name, _, _ in PERMISSIONS],
    RoleName.DOCTOR: [
        "patients.view", "patients.edit",
        "prescriptions.create", "prescriptions.view", "prescriptions.edit",
        "vitals.create", "vitals.view", "vitals.edit",
        "testresults.create", "testresults.view", "testresults.edit",
    ],
    RoleName.NURSE: [
        "patients.view", "patients.edit",
        "prescriptions.view",
        "vitals.create", "vitals.view",
        "testresults.view",
    ],
    RoleName.PATIENT: [],
}

SYSTEM_ROLE_DESCRIPTIONS = {
    RoleName.SUPER_ADMIN: "Full system access",
    RoleName.DOCTOR: "Medical doctor",
    RoleName.NURSE: "Nursing staff",
    RoleName.PATIENT: "Registered patient",
}


def seed_permissions(db: Session) -> None:
    existing = {name for (name,) in db.query(Permission.name).all()}
    for name, description, category in PERMISSIONS:
        if name not in existing:
            db.add(Permission(name=name, description=description, category=category))
    db.commit()


def seed_roles(db: Session) -> None:
    permissions = {p.name: p for p in db.query(Permission).all()}
    for role_name, permission_names in SYSTEM_ROLE_PERMISSIONS.items():
        role = db.query(Role).filter(Role.name == role_name.value).first()
        if role:
            continue
        role = Role(
            name=role_name.value,
            description=SYSTEM_ROLE_DESCRIPTIONS[role_name],
            is_system_role=True,
        )
        for permission_name in permission_names:
            role.permissions.append(RolePermission(permission=permissions[permission_name]))
        db.add(role)
        logger.info(f"Seeded system role {role_name.value}")
    db.commit()


def seed_admin_user(db: Session) -> None:
    if db.query(User).filter(User.email == settings.ADMIN_EMAIL).first():
        return

    admin_role = db.query(Role).filter(Role.name == RoleName.SUPER_ADMIN.value).first()
    if not admin_role:
        raise RuntimeError("SuperAdmin role not found; seed roles first")

    admin = User(
        email=settings.ADMIN_EMAIL,
        username=settings.ADMIN_USERNAME,
        password_hash=get_password_hash(settings.ADMIN_PASSWORD),
        is_active=True,
        is_verified=True,
    )
    admin.user_roles.append(UserRole(role=admin_role))
    db.add(admin)
    db.commit()
    logger.info(f"Seeded admin user {settings.ADMIN_EMAIL}")


def seed_all(db: Session) -> None:
    """Permissions first, then roles that reference them, then the admin account."""
    seed_permissions(db)
    seed_roles(db)
    seed_admin_user(db)
