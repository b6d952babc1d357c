from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import logging

from ..models.user import User, RefreshToken, EmailConfirmationToken
from ..models.role import Role, UserRole
from ..models.patient import PatientRecord
from ..core.config import settings
from ..core.security import (
    verify_password, get_password_hash, create_token_pair,
    verify_token, RoleName, generate_password_reset_token,
    generate_email_confirmation_token
)
from ..schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    PasswordResetConfirm
)
from .notifications import NotificationGateway, dispatch, get_notifier
from .rbac import primary_role

logger = logging.getLogger(__name__)


def user_response(user: User) -> UserResponse:
    roles = user.role_names
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        is_active=bool(user.is_active),
        is_verified=bool(user.is_verified),
        patient_record_id=user.patient_record_id,
        roles=sorted(roles),
        role=primary_role(roles).value,
        created_at=user.created_at,
    )


class AuthService:
    def __init__(self, db: Session, notifier: Optional[NotificationGateway] = None):
        self.db = db
        self.notifier = notifier or get_notifier()

    def register_user(self, user_data: UserRegister) -> User:
        """Register a patient: creates the patient record and links it to the new account."""
        existing_user = self.db.query(User).filter(
            (User.email == user_data.email) | (User.username == user_data.username)
        ).first()

        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email or username already registered"
            )

        patient_role = self.db.query(Role).filter(Role.name == RoleName.PATIENT.value).first()
        if not patient_role:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Patient role is not configured"
            )

        record = PatientRecord(
            full_name=user_data.full_name,
            date_of_birth=user_data.date_of_birth,
            gender=user_data.gender,
            phone_number=user_data.phone_number,
        )
        self.db.add(record)
        self.db.flush()

        new_user = User(
            email=user_data.email,
            username=user_data.username,
            password_hash=get_password_hash(user_data.password),
            patient_record_id=record.id,
            is_active=True,
            is_verified=False
        )
        new_user.user_roles.append(UserRole(role=patient_role))

        self.db.add(new_user)
        self.db.flush()
        token = self._create_confirmation_token(new_user)
        self.db.commit()
        self.db.refresh(new_user)

        logger.info(f"Registered patient user {new_user.id} with record {record.id}")
        dispatch(self.notifier.notify_email_confirmation, new_user, token.token)
        return new_user

    def confirm_email(self, user_id: int, token: str) -> None:
        """Mark the account confirmed and burn the token."""
        confirmation = self.db.query(EmailConfirmationToken).filter(
            EmailConfirmationToken.user_id == user_id,
            EmailConfirmationToken.token == token,
            EmailConfirmationToken.used_at == None  # noqa: E711
        ).first()

        if not confirmation:
            logger.warning(f"Invalid confirmation token for user {user_id}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid confirmation token"
            )

        now = datetime.utcnow()
        if confirmation.expires_at < now:
            logger.warning(f"Expired confirmation token for user {user_id}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Confirmation token has expired"
            )

        confirmation.user.is_verified = True
        confirmation.used_at = now
        self.db.commit()
        logger.info(f"Email confirmed for user {user_id}")

    def resend_confirmation(self, email: str) -> None:
        """Replace any outstanding confirmation token with a fresh one."""
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            # Don't reveal if email exists
            return

        if user.is_verified:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is already confirmed"
            )

        token = self._create_confirmation_token(user)
        self.db.commit()

        logger.info(f"Confirmation token reissued for user {user.id}")
        dispatch(self.notifier.notify_email_confirmation, user, token.token)

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        # Check account lockout
        if user.locked_until and user.locked_until > datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is temporarily locked"
            )

        if not verify_password(login_data.password, user.password_hash):
            self._handle_failed_login(user)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        if not user.is_verified:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Please confirm your email before logging in"
            )

        # Reset failed login attempts
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        response = self._issue_tokens(user)
        self.db.commit()
        return response

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh access token using refresh token."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != "refresh":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        # Check if refresh token exists in database
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash,
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token"
            )

        user = self.db.query(User).filter(
            User.id == token_payload.user_id
        ).first()

        if not user or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive"
            )

        # Roles may have changed since the old token was minted
        response = self._issue_tokens(user)
        self.db.commit()
        return response

    def logout_user(self, refresh_token: str) -> bool:
        """Logout user by revoking refresh token."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == token_hash
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        return True

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )

        user.password_hash = get_password_hash(new_password)
        self.db.commit()

    def request_password_reset(self, email: str) -> bool:
        """Generate password reset token."""
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            # Don't reveal if email exists
            return True

        user.password_reset_token = generate_password_reset_token()
        user.password_reset_expires = datetime.utcnow() + timedelta(hours=1)

        self.db.commit()
        logger.info(f"Password reset requested for user {user.id}")
        return True

    def reset_password(self, reset_data: PasswordResetConfirm) -> bool:
        """Reset password using reset token."""
        user = self.db.query(User).filter(
            User.password_reset_token == reset_data.token,
            User.password_reset_expires > datetime.utcnow()
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token"
            )

        user.password_hash = get_password_hash(reset_data.new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.failed_login_attempts = 0
        user.locked_until = None

        # Revoke all refresh tokens
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id
        ).update({"is_revoked": True})

        self.db.commit()
        return True

    def _issue_tokens(self, user: User) -> TokenResponse:
        roles = user.role_names
        tokens = create_token_pair(user.id, user.email, roles, primary_role(roles))
        self._store_refresh_token(user.id, tokens.refresh_token)

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=user_response(user)
        )

    def _create_confirmation_token(self, user: User) -> EmailConfirmationToken:
        now = datetime.utcnow()

        # Only the newest token stays usable
        self.db.query(EmailConfirmationToken).filter(
            EmailConfirmationToken.user_id == user.id,
            EmailConfirmationToken.used_at == None  # noqa: E711
        ).update({"used_at": now})

        token = EmailConfirmationToken(
            user_id=user.id,
            token=generate_email_confirmation_token(),
            expires_at=now + timedelta(hours=settings.EMAIL_CONFIRMATION_EXPIRE_HOURS)
        )
        self.db.add(token)
        return token

    def _handle_failed_login(self, user: User):
        """Handle failed login attempt."""
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        if user.failed_login_attempts >= settings.MAX_FAILED_LOGINS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            logger.warning(f"User {user.id} locked after {user.failed_login_attempts} failed logins")

        self.db.commit()

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store refresh token in database."""
        token_hash = hashlib.sha256(refresh_token.encode()).hexdigest()

        token_payload = verify_token(refresh_token)
        if token_payload and token_payload.exp:
            expires_at = datetime.utcfromtimestamp(token_payload.exp)
        else:
            expires_at = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # One live refresh token per user
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at
        ))
