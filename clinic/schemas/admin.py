from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .auth import _check_password_strength


class AdminCreateUserRequest(BaseModel):
    """Staff account creation; patients self-register."""
    email: EmailStr
    username: str = Field(min_length=3, max_length=100)
    password: str
    roles: List[str] = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        return _check_password_strength(v)


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: List[str] = []


class RoleUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: List[str] = []


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    is_system_role: bool
    created_at: Optional[datetime] = None
    permissions: List[str] = []


class AssignRoleRequest(BaseModel):
    user_id: int
    role_id: int


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    category: str


class AssignmentRequest(BaseModel):
    user_id: int
    patient_record_id: int


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    patient_record_id: int
    created_at: Optional[datetime] = None


class SpecializationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class SpecializationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class SpecializationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class CreateDoctorRequest(BaseModel):
    user_id: int
    full_name: str = Field(min_length=1, max_length=100)
    specialization_id: int
    consultation_fee: Decimal = Field(default=Decimal("0"), ge=0)
    years_of_experience: int = Field(default=0, ge=0)
    bio: Optional[str] = Field(default=None, max_length=500)
    phone_number: Optional[str] = Field(default=None, max_length=20)
