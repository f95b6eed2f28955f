from fastapi import Depends, status
from sqlalchemy.orm import Session
from spebit.core.exceptions import CustomHTTPException
from spebit.core.auth import get_current_user
from spebit.core.database import get_db
from spebit.models.user import User, UserRole

# Where the client should send an actor that lacks the role
SAFE_REDIRECT = "/dashboard"


def has_role(user_id: str, role: str, db: Session) -> bool:
    return (
        db.query(UserRole)
        .filter(UserRole.UserID == user_id, UserRole.Role == role)
        .first()
        is not None
    )


def require_role(role: str):
    def role_checker(
        current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
    ):
        if not has_role(current_user.UserID, role, db):
            raise CustomHTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                message=f"Role '{role}' required",
                details={"redirect": SAFE_REDIRECT},
            )
        return current_user

    return role_checker


require_admin = require_role("admin")
