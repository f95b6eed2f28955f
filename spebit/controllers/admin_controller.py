import logging
from typing import Optional
from fastapi import status
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from spebit.controllers.transactions.lifecycle import APPROVED, PENDING_STATUSES, REJECTED
from spebit.controllers.transactions.users import get_user_transactions
from spebit.core.exceptions import CustomHTTPException, DatabaseError
from spebit.core.rbac import has_role
from spebit.core.responses import success_response
from spebit.core.schemas import PaginatedResponse
from spebit.core.utils import paginate
from spebit.models.cryptocurrency import Cryptocurrency
from spebit.models.referral import Referral
from spebit.models.transaction import Transaction
from spebit.models.user import User, UserRole
from spebit.models.wallet import UserWallet
from spebit.schemas.user_schema import Order, RoleUpdate, UserResponseData

logger = logging.getLogger(__name__)


def _get_user_or_404(user_id: str, db: Session) -> User:
    user = db.query(User).filter(User.UserID == user_id).first()
    if not user:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="User not found"
        )
    return user


def _user_roles(user_id: str, db: Session) -> list:
    return [
        r.Role
        for r in db.query(UserRole).filter(UserRole.UserID == user_id).order_by(UserRole.Role)
    ]


def bootstrap_admin(current_user: User, db: Session):
    """Grant the admin role to the caller if no admin exists yet."""
    if db.query(UserRole).filter(UserRole.Role == "admin").first():
        raise CustomHTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            message="An admin already exists",
            details={"redirect": "/dashboard"},
        )

    try:
        db.add(UserRole(UserID=current_user.UserID, Role="admin"))
        db.commit()
    except Exception as e:
        db.rollback()
        raise DatabaseError(f"Database error: {str(e)}")

    logger.info(f"User {current_user.UserID} bootstrapped as the first admin")
    return success_response(
        message="Admin role granted",
        data={"UserID": current_user.UserID, "roles": _user_roles(current_user.UserID, db)},
    )


def get_analytics_summary(db: Session):
    total_users = db.query(User).count()
    blocked_users = db.query(User).filter(User.IsBlocked == True).count()

    total_transactions = db.query(Transaction).count()
    pending_transactions = (
        db.query(Transaction).filter(Transaction.Status.in_(PENDING_STATUSES)).count()
    )
    approved_transactions = (
        db.query(Transaction).filter(Transaction.Status == APPROVED).count()
    )
    rejected_transactions = (
        db.query(Transaction).filter(Transaction.Status == REJECTED).count()
    )
    approved_volume = (
        db.query(func.sum(Transaction.TotalAmount))
        .filter(Transaction.Status == APPROVED)
        .scalar()
        or 0
    )

    total_cryptocurrencies = db.query(Cryptocurrency).count()
    active_cryptocurrencies = (
        db.query(Cryptocurrency).filter(Cryptocurrency.IsActive == True).count()
    )

    total_referrals = db.query(Referral).count()
    referral_earnings = db.query(func.sum(UserWallet.ReferralEarnings)).scalar() or 0

    return success_response(
        message="Analytics summary retrieved successfully",
        data={
            "users": {
                "total": total_users,
                "blocked": blocked_users,
                "active": total_users - blocked_users,
            },
            "transactions": {
                "total": total_transactions,
                "pending": pending_transactions,
                "approved": approved_transactions,
                "rejected": rejected_transactions,
                "approved_volume": str(approved_volume),
            },
            "cryptocurrencies": {
                "total": total_cryptocurrencies,
                "active": active_cryptocurrencies,
            },
            "referrals": {
                "total": total_referrals,
                "total_earnings": str(referral_earnings),
            },
        },
    )


def get_all_users(
    db: Session,
    page: int = 1,
    per_page: int = 10,
    search: Optional[str] = None,
    is_blocked: Optional[bool] = None,
    order: Optional[Order] = None,
):
    query = db.query(User)

    if search:
        query = query.filter(
            or_(
                User.FullName.ilike(f"%{search}%"),
                User.MobileNumber.ilike(f"%{search}%"),
                User.Email.ilike(f"%{search}%"),
            )
        )
    if is_blocked is not None:
        query = query.filter(User.IsBlocked == is_blocked)

    sort_order = asc if order == Order.asc else desc
    query = query.order_by(sort_order(User.CreatedAt))

    users, total_items, total_pages = paginate(query, page, per_page)
    return PaginatedResponse(
        success=True,
        message="Users retrieved successfully",
        data={
            "items": [
                {
                    **UserResponseData.model_validate(u).model_dump(mode="json"),
                    "roles": _user_roles(u.UserID, db),
                }
                for u in users
            ]
        },
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
    )


def get_user_by_id(user_id: str, db: Session):
    user = _get_user_or_404(user_id, db)
    return success_response(
        message="User details retrieved successfully",
        data={
            **UserResponseData.model_validate(user).model_dump(mode="json"),
            "roles": _user_roles(user_id, db),
        },
    )


def get_user_transactions_for_admin(
    user_id: str, db: Session, page: int = 1, per_page: int = 10
):
    _get_user_or_404(user_id, db)
    return get_user_transactions(user_id, db, page, per_page)


def toggle_user_block(user_id: str, current_admin_id: str, db: Session):
    if user_id == current_admin_id:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="You cannot block your own account",
        )
    user = _get_user_or_404(user_id, db)

    user.IsBlocked = not user.IsBlocked
    db.commit()
    logger.info(
        f"User {user_id} {'blocked' if user.IsBlocked else 'unblocked'} by admin {current_admin_id}"
    )
    return success_response(
        message=f"User {'blocked' if user.IsBlocked else 'unblocked'} successfully",
        data={"UserID": user.UserID, "IsBlocked": user.IsBlocked},
    )


def update_user_role(user_id: str, role_update: RoleUpdate, current_admin_id: str, db: Session):
    _get_user_or_404(user_id, db)
    role = role_update.Role.value

    if not role_update.Grant and role == "admin" and user_id == current_admin_id:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="You cannot revoke your own admin role",
        )

    if role_update.Grant:
        if not has_role(user_id, role, db):
            try:
                db.add(UserRole(UserID=user_id, Role=role))
                db.commit()
            except IntegrityError:
                # Granted concurrently
                db.rollback()
    else:
        db.query(UserRole).filter(
            UserRole.UserID == user_id, UserRole.Role == role
        ).delete(synchronize_session=False)
        db.commit()

    return success_response(
        message=f"Role '{role}' {'granted' if role_update.Grant else 'revoked'} successfully",
        data={"UserID": user_id, "roles": _user_roles(user_id, db)},
    )
