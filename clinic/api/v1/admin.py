from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Actor, RoleName
from ...api.deps import require_permission, require_role
from ...schemas.admin import (
    AdminCreateUserRequest, AssignmentRequest, AssignmentResponse, AssignRoleRequest,
    CreateDoctorRequest, PermissionResponse, RoleCreate, RoleResponse, RoleUpdate,
    SpecializationCreate, SpecializationResponse, SpecializationUpdate,
)
from ...schemas.auth import UserResponse
from ...schemas.doctor import DoctorResponse
from ...services.admin_service import AdminService, role_response
from ...services.auth_service import user_response

router = APIRouter(prefix="/admin", tags=["Administration"])

admin_only = require_role(RoleName.SUPER_ADMIN)


# Users

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    skip: int = 0,
    limit: int = 50,
    _: Actor = Depends(require_permission("users.view")),
    db: Session = Depends(get_db)
):
    return [user_response(user) for user in AdminService(db).list_users(skip, limit)]


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: AdminCreateUserRequest,
    actor: Actor = Depends(require_permission("users.create")),
    db: Session = Depends(get_db)
):
    """Create a staff account (doctor, nurse, admin or custom role)."""
    return user_response(AdminService(db).create_staff_user(actor, data))


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: int,
    is_active: bool,
    _: Actor = Depends(require_permission("users.edit")),
    db: Session = Depends(get_db)
):
    return user_response(AdminService(db).set_user_active(user_id, is_active))


# Roles

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    _: Actor = Depends(require_permission("roles.view")),
    db: Session = Depends(get_db)
):
    return [role_response(role) for role in AdminService(db).list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    _: Actor = Depends(require_permission("roles.view")),
    db: Session = Depends(get_db)
):
    return role_response(AdminService(db).get_role(role_id))


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    _: Actor = Depends(require_permission("roles.create")),
    db: Session = Depends(get_db)
):
    return role_response(AdminService(db).create_role(data))


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    data: RoleUpdate,
    _: Actor = Depends(require_permission("roles.edit")),
    db: Session = Depends(get_db)
):
    return role_response(AdminService(db).update_role(role_id, data))


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    _: Actor = Depends(require_permission("roles.delete")),
    db: Session = Depends(get_db)
):
    AdminService(db).delete_role(role_id)


@router.post("/roles/assign")
async def assign_role(
    request: AssignRoleRequest,
    actor: Actor = Depends(require_permission("roles.edit")),
    db: Session = Depends(get_db)
):
    AdminService(db).assign_role(actor, request.user_id, request.role_id)
    return {"message": "Role assigned successfully"}


@router.post("/roles/unassign")
async def unassign_role(
    request: AssignRoleRequest,
    _: Actor = Depends(require_permission("roles.edit")),
    db: Session = Depends(get_db)
):
    AdminService(db).unassign_role(request.user_id, request.role_id)
    return {"message": "Role unassigned successfully"}


@router.get("/permissions", response_model=Dict[str, List[PermissionResponse]])
async def list_permissions(
    _: Actor = Depends(require_permission("roles.view")),
    db: Session = Depends(get_db)
):
    """Permission catalogue grouped by display category."""
    return AdminService(db).permissions_by_category()


# Staff-to-patient assignments

@router.get("/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    patient_record_id: Optional[int] = None,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).list_assignments(patient_record_id)


@router.post("/assignments", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    request: AssignmentRequest,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).create_assignment(request)


@router.post("/assignments/remove")
async def delete_assignment(
    request: AssignmentRequest,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    AdminService(db).delete_assignment(request)
    return {"message": "Assignment removed successfully"}


# Specializations

@router.get("/specializations", response_model=List[SpecializationResponse])
async def list_specializations(
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).list_specializations()


@router.post("/specializations", response_model=SpecializationResponse, status_code=status.HTTP_201_CREATED)
async def create_specialization(
    data: SpecializationCreate,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).create_specialization(data)


@router.put("/specializations/{specialization_id}", response_model=SpecializationResponse)
async def update_specialization(
    specialization_id: int,
    data: SpecializationUpdate,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).update_specialization(specialization_id, data)


# Doctor profiles

@router.post("/doctors", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    data: CreateDoctorRequest,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return AdminService(db).create_doctor(data)


@router.patch("/doctors/{doctor_id}/status", response_model=DoctorResponse)
async def update_doctor_status(
    doctor_id: int,
    is_active: bool,
    _: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    """Deactivated doctors disappear from listings and booking; their history stays."""
    return AdminService(db).set_doctor_active(doctor_id, is_active)
