from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import (
    get_current_user, rate_limit_check, get_current_user_token
)
from ...services.auth_service import AuthService, user_response
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    RefreshTokenRequest, PasswordReset, PasswordResetConfirm,
    ChangePassword, ResendConfirmation
)
from ...models.user import User
from ...services.notifications import NotificationGateway, get_notifier
from ...services.rbac import get_permissions, get_role_names, primary_role

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
    _: None = Depends(rate_limit_check)
):
    """Register a new patient account. It must be confirmed by email before login."""
    auth_service = AuthService(db, notifier)
    user = auth_service.register_user(user_data)
    return user_response(user)

@router.get("/confirm-email")
async def confirm_email(
    user_id: int,
    token: str,
    db: Session = Depends(get_db)
):
    """Confirm an email address with the link token sent at registration."""
    auth_service = AuthService(db)
    auth_service.confirm_email(user_id, token)

    return {"message": "Email confirmed successfully. You can now log in."}

@router.post("/resend-confirmation")
async def resend_confirmation(
    request: ResendConfirmation,
    db: Session = Depends(get_db),
    notifier: NotificationGateway = Depends(get_notifier),
    _: None = Depends(rate_limit_check)
):
    """Send a fresh confirmation link; earlier links stop working."""
    auth_service = AuthService(db, notifier)
    auth_service.resend_confirmation(request.email)

    return {"message": "If the email exists, a confirmation link has been sent"}

@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
):
    """Authenticate user and return access tokens."""
    auth_service = AuthService(db)
    return auth_service.authenticate_user(login_data)

@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Refresh access token using refresh token."""
    auth_service = AuthService(db)
    return auth_service.refresh_access_token(refresh_data.refresh_token)

@router.post("/logout")
async def logout(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    auth_service = AuthService(db)
    success = auth_service.logout_user(refresh_data.refresh_token)

    return {"message": "Successfully logged out" if success else "Logout completed"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return user_response(current_user)

@router.post("/change-password")
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    auth_service = AuthService(db)
    auth_service.change_password(
        current_user, password_data.current_password, password_data.new_password
    )
    return {"message": "Password changed successfully"}

@router.post("/forgot-password")
async def forgot_password(
    reset_data: PasswordReset,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Request password reset."""
    auth_service = AuthService(db)
    auth_service.request_password_reset(reset_data.email)

    return {"message": "If the email exists, a password reset link has been sent"}

@router.post("/reset-password")
async def reset_password(
    reset_data: PasswordResetConfirm,
    db: Session = Depends(get_db)
):
    """Reset password using reset token."""
    auth_service = AuthService(db)
    auth_service.reset_password(reset_data)

    return {"message": "Password reset successfully"}

@router.post("/verify-token")
async def verify_token_endpoint(
    token_payload = Depends(get_current_user_token)
):
    """Verify if token is valid."""
    return {
        "valid": True,
        "user_id": token_payload.user_id,
        "email": token_payload.email,
        "role": token_payload.role,
        "roles": token_payload.roles,
        "expires": token_payload.exp
    }

@router.get("/me/permissions")
async def get_current_user_permissions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Roles and the effective permission set granted through them."""
    roles = get_role_names(db, current_user.id)
    return {
        "user_id": current_user.id,
        "roles": sorted(roles),
        "primary_role": primary_role(roles).value,
        "permissions": get_permissions(db, current_user.id)
    }
