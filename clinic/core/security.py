from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, List, Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from pydantic import BaseModel
import secrets
from enum import Enum

from .config import settings

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT Security
security = HTTPBearer()

class RoleName(str, Enum):
    """Names of the system roles. Stored verbatim in the roles table."""
    SUPER_ADMIN = "SuperAdmin"
    DOCTOR = "Doctor"
    NURSE = "Nurse"
    PATIENT = "Patient"

STAFF_ROLES = (RoleName.SUPER_ADMIN.value, RoleName.DOCTOR.value, RoleName.NURSE.value)


@dataclass(frozen=True)
class Actor:
    """Resolved identity of the caller: who they are and what roles they hold."""
    id: int
    roles: FrozenSet[str] = field(default_factory=frozenset)
    patient_record_id: Optional[int] = None
    email: Optional[str] = None

    def has_role(self, role: "RoleName | str") -> bool:
        name = role.value if isinstance(role, RoleName) else role
        return name in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(RoleName.SUPER_ADMIN)


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

class TokenPayload(BaseModel):
    sub: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    roles: List[str] = []
    exp: Optional[int] = None
    token_type: Optional[str] = None  # "access" or "refresh"

    @property
    def user_id(self) -> Optional[int]:
        try:
            return int(self.sub) if self.sub is not None else None
        except ValueError:
            return None

# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)

def generate_password_reset_token() -> str:
    """Generate a secure random token for password reset."""
    return secrets.token_urlsafe(32)

def generate_email_confirmation_token() -> str:
    return secrets.token_urlsafe(32)

# JWT utilities
def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({
        "exp": expire,
        "token_type": "access"
    })

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

def create_refresh_token(data: dict) -> str:
    """Create JWT refresh token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    to_encode.update({
        "exp": expire,
        "token_type": "refresh",
        # Two refresh tokens minted in the same second must still hash differently
        "jti": secrets.token_hex(8),
    })

    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify and decode JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        return TokenPayload(**payload)

    except JWTError:
        return None

def create_token_pair(user_id: int, email: str, roles: List[str], primary_role: RoleName) -> Token:
    """Create both access and refresh tokens.

    The primary role is embedded as the ``role`` claim; the full role list
    travels alongside it as ``roles``.
    """
    token_data = {
        "sub": str(user_id),
        "email": email,
        "role": primary_role.value,
        "roles": sorted(roles),
    }

    access_token = create_access_token(token_data)
    refresh_token = create_refresh_token(token_data)

    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

# Security exceptions
class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
