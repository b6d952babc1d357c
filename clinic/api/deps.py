from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from datetime import datetime

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, RoleName, TokenPayload, Actor
)
from ..models.user import User
from ..services.rbac import has_permission

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if token_payload.user_id is None:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.user_id).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    user.last_login = datetime.utcnow()
    db.commit()

    return user

async def get_current_actor(
    current_user: User = Depends(get_current_user)
) -> Actor:
    """Resolve the caller into an Actor.

    Roles come from the database rather than the token so that revoking a
    role takes effect before the token expires.
    """
    return Actor(
        id=current_user.id,
        roles=frozenset(current_user.role_names),
        patient_record_id=current_user.patient_record_id,
        email=current_user.email,
    )

# Role-based access control dependencies
def require_role(*allowed_roles: RoleName):
    """Create a dependency that requires any one of the given roles."""
    async def role_checker(
        actor: Actor = Depends(get_current_actor)
    ) -> Actor:
        if not any(actor.has_role(role) for role in allowed_roles):
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return actor

    return role_checker

def require_permission(permission_name: str):
    """Create a dependency that requires a named permission through any held role."""
    async def permission_checker(
        actor: Actor = Depends(get_current_actor),
        db: Session = Depends(get_db)
    ) -> Actor:
        if not has_permission(db, actor.id, permission_name):
            raise AuthorizationError(f"Missing permission: {permission_name}")
        return actor

    return permission_checker

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic per-IP rate limiting for unauthenticated endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, 3600, 1)  # 1 hour window
    else:
        if int(current_requests) >= settings.RATE_LIMIT_PER_HOUR:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)
