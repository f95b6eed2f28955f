import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import BackgroundTasks, status
from sqlalchemy.orm import Session
from spebit.controllers.referral_controller import get_or_create_referral_code, link_referral
from spebit.core.auth import (
    create_access_token,
    create_password_reset_token,
    create_refresh_token,
    decode_token,
    PASSWORD_RESET_EXPIRE_MINUTES,
)
from spebit.core.config import APP_ORIGIN
from spebit.core.event_emitter import emit_event
from spebit.core.exceptions import CustomHTTPException, DatabaseError
from spebit.core.rate_limiter import is_token_revoked, revoke_token
from spebit.core.realtime import RealtimeHub
from spebit.core.responses import success_response
from spebit.core.utils import check_unique_field, hash_password, send_email, verify_password
from spebit.models.user import User, UserRole
from spebit.schemas.user_schema import (
    PasswordResetConfirm,
    PasswordResetRequest,
    UserCreate,
    UserLogin,
    UserResponseData,
    UserUpdate,
)

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


def _issue_tokens(user: User) -> dict:
    return {
        "access_token": create_access_token(data={"sub": user.UserID}),
        "refresh_token": create_refresh_token(data={"sub": user.UserID}),
        "token_type": "bearer",
    }


def _remaining_seconds(payload: dict) -> int:
    return int(payload["exp"] - datetime.now(timezone.utc).timestamp())


def _roles(user_id: str, db: Session) -> list:
    return [r.Role for r in db.query(UserRole).filter(UserRole.UserID == user_id)]


async def _auth_state_changed(hub: RealtimeHub, user_id: str, event: str):
    await emit_event(hub, "auth_state_changed", {"event": event}, user_id=user_id)


def register_user(user: UserCreate, db: Session):
    check_unique_field(db, User, "Email", user.Email, id_field="UserID")

    try:
        new_user = User(**user.model_dump(exclude={"Password", "ReferralCode"}))
        new_user.Password = hash_password(user.Password)
        db.add(new_user)
        db.flush()
        db.add(UserRole(UserID=new_user.UserID, Role="user"))
        db.commit()
        db.refresh(new_user)
    except Exception as e:
        db.rollback()
        raise DatabaseError(f"Database error: {str(e)}")

    referred = False
    if user.ReferralCode:
        # A bad referral code never blocks sign-up
        try:
            referred = link_referral(new_user, user.ReferralCode, db)
        except Exception as e:
            db.rollback()
            logger.error(f"Could not link referral code {user.ReferralCode} for {new_user.UserID}: {e}")

    return success_response(
        message="User registered successfully",
        data={
            **UserResponseData.model_validate(new_user).model_dump(mode="json"),
            "referred": referred,
        },
        status_code=status.HTTP_201_CREATED,
    )


async def login_user(credentials: UserLogin, db: Session, hub: RealtimeHub):
    user = db.query(User).filter(User.Email == credentials.Email).first()

    if not user or not verify_password(credentials.Password, user.Password):
        raise CustomHTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, message="Invalid email or password"
        )

    if user.IsBlocked:
        raise CustomHTTPException(
            status_code=status.HTTP_403_FORBIDDEN, message="Account is blocked"
        )

    user.LastLogin = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    await _auth_state_changed(hub, user.UserID, SIGNED_IN)
    return success_response(
        message="Login successful",
        data={
            **UserResponseData.model_validate(user).model_dump(mode="json"),
            **_issue_tokens(user),
        },
    )


def refresh_session(refresh_token: str, db: Session):
    invalid = CustomHTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, message="Invalid refresh token"
    )
    payload = decode_token(refresh_token, expected_type="refresh")
    if payload is None or is_token_revoked(payload["jti"]):
        raise invalid

    user = db.query(User).filter(User.UserID == payload["sub"]).first()
    if user is None:
        raise invalid
    if user.IsBlocked:
        raise CustomHTTPException(
            status_code=status.HTTP_403_FORBIDDEN, message="Account is blocked"
        )

    # Rotate: the presented refresh token cannot be used again
    revoke_token(payload["jti"], _remaining_seconds(payload))
    return success_response(message="Session refreshed", data=_issue_tokens(user))


async def logout_user(user: User, refresh_token: Optional[str], hub: RealtimeHub):
    if refresh_token:
        payload = decode_token(refresh_token, expected_type="refresh")
        if payload and payload["sub"] == user.UserID:
            revoke_token(payload["jti"], _remaining_seconds(payload))

    await _auth_state_changed(hub, user.UserID, SIGNED_OUT)
    return success_response(message="Logged out successfully", data={"UserID": user.UserID})


def send_password_reset_email(email: str, token: str) -> None:
    link = f"{APP_ORIGIN}/auth?reset_token={token}"
    try:
        send_email(
            email,
            "Reset your password",
            f"Use the link below to reset your password. It expires in "
            f"{PASSWORD_RESET_EXPIRE_MINUTES} minutes.\n\n{link}",
        )
    except Exception as e:
        logger.error(f"Password reset email to {email} failed: {e}")


def request_password_reset(
    request_in: PasswordResetRequest, db: Session, background_tasks: BackgroundTasks
):
    user = db.query(User).filter(User.Email == request_in.Email).first()
    if user and not user.IsBlocked:
        token = create_password_reset_token(user.UserID)
        background_tasks.add_task(send_password_reset_email, user.Email, token)

    # Same answer whether or not the email is registered
    return success_response(
        message="If the email is registered, a password reset link has been sent",
        data={},
    )


async def confirm_password_reset(confirm: PasswordResetConfirm, db: Session, hub: RealtimeHub):
    payload = decode_token(confirm.token, expected_type="password_reset")
    if payload is None:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Invalid or expired password reset token",
        )

    user = db.query(User).filter(User.UserID == payload["sub"]).first()
    if not user:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="User not found"
        )

    user.Password = hash_password(confirm.NewPassword)
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to update password",
            details={"error": str(e)},
        )

    await _auth_state_changed(hub, user.UserID, PASSWORD_RECOVERY)
    return success_response(message="Password updated successfully", data={"UserID": user.UserID})


def get_session(user: User, db: Session):
    roles = _roles(user.UserID, db)
    return success_response(
        message="User details retrieved successfully",
        data={
            **UserResponseData.model_validate(user).model_dump(mode="json"),
            "roles": roles,
            "is_admin": "admin" in roles,
            "referral_code": get_or_create_referral_code(user.UserID, db),
        },
    )


def update_current_user(user: User, user_update: UserUpdate, db: Session):
    for key, value in user_update.model_dump(exclude_unset=True).items():
        setattr(user, key, value)

    try:
        db.commit()
        db.refresh(user)
        return success_response(
            message="Profile updated successfully",
            data=UserResponseData.model_validate(user).model_dump(mode="json"),
        )
    except Exception as e:
        db.rollback()
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to update profile",
            details={"error": str(e)},
        )
