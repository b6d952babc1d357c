"""
Role and permission lookups.

Read-only over the user/role/permission tables maintained by the admin
endpoints.
"""
from typing import Iterable, List

from sqlalchemy.orm import Session

from ..core.security import RoleName
from ..models.role import Permission, Role, RolePermission, UserRole

# Highest value wins when an actor holds several roles
ROLE_PRIORITY = (
    (RoleName.SUPER_ADMIN, 4),
    (RoleName.DOCTOR, 3),
    (RoleName.NURSE, 2),
    (RoleName.PATIENT, 1),
)

DEFAULT_ROLE = RoleName.PATIENT


def primary_role(role_names: Iterable[str]) -> RoleName:
    """Return the single highest-priority role among ``role_names``.

    Unrecognized names are ignored; an actor with no recognized role is
    treated as a patient.
    """
    held = set(role_names)
    best = None
    best_priority = 0
    for role, priority in ROLE_PRIORITY:
        if role.value in held and priority > best_priority:
            best, best_priority = role, priority
    return best or DEFAULT_ROLE


def get_role_names(db: Session, user_id: int) -> List[str]:
    rows = (
        db.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return [name for (name,) in rows]


def has_permission(db: Session, user_id: int, permission_name: str) -> bool:
    """True iff any role held by the user links to the named permission."""
    match = (
        db.query(RolePermission.id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id, Permission.name == permission_name)
        .first()
    )
    return match is not None


def get_permissions(db: Session, user_id: int) -> List[str]:
    rows = (
        db.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return sorted(name for (name,) in rows)
