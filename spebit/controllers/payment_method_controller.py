import logging
from typing import Optional
from fastapi import status
from sqlalchemy import asc
from sqlalchemy.orm import Session
from spebit.core.exceptions import CustomHTTPException
from spebit.core.responses import success_response
from spebit.models.payment_method import (
    BANK_TRANSFER,
    DETAIL_FIELDS,
    EMAIL,
    UPI,
    PaymentMethod,
)
from spebit.models.transaction import Transaction
from spebit.schemas.payment_method_schema import (
    BankTransferDetails,
    EmailDetails,
    PaymentMethodCreate,
    PaymentMethodResponse,
    PaymentMethodUpdate,
    UpiDetails,
)

logger = logging.getLogger(__name__)


def method_details(method: PaymentMethod):
    """The tagged details of a payment method, chosen by its stored kind."""
    if method.Kind == UPI:
        return UpiDetails(upi_id=method.UpiID)
    if method.Kind == EMAIL:
        return EmailDetails(email=method.EmailID)
    if method.Kind == BANK_TRANSFER:
        return BankTransferDetails(
            account_holder_name=method.AccountHolderName,
            bank_name=method.BankName,
            account_number=method.AccountNumber,
            ifsc_code=method.IFSCCode,
        )
    raise ValueError(f"Unknown payment method kind: {method.Kind}")


def apply_details(method: PaymentMethod, details) -> None:
    # Only the columns of the chosen kind stay populated
    for field in DETAIL_FIELDS:
        setattr(method, field, None)
    method.Kind = details.kind
    if isinstance(details, UpiDetails):
        method.UpiID = details.upi_id
    elif isinstance(details, EmailDetails):
        method.EmailID = str(details.email)
    else:
        method.AccountHolderName = details.account_holder_name
        method.BankName = details.bank_name
        method.AccountNumber = details.account_number
        method.IFSCCode = details.ifsc_code.upper()


def serialize_payment_method(method: PaymentMethod) -> dict:
    return PaymentMethodResponse(
        PaymentMethodID=method.PaymentMethodID,
        Name=method.Name,
        IconURL=method.IconURL,
        IsActive=method.IsActive,
        Kind=method.Kind,
        Details=method_details(method),
        CreatedAt=method.CreatedAt,
    ).model_dump(mode="json")


def _get_or_404(method_id: str, db: Session) -> PaymentMethod:
    method = (
        db.query(PaymentMethod).filter(PaymentMethod.PaymentMethodID == method_id).first()
    )
    if not method:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Payment method not found"
        )
    return method


def list_payment_methods(db: Session, is_active: Optional[bool] = None):
    query = db.query(PaymentMethod)
    if is_active is not None:
        query = query.filter(PaymentMethod.IsActive == is_active)
    methods = query.order_by(asc(PaymentMethod.Name)).all()
    return success_response(
        message="Payment methods retrieved successfully",
        data={"items": [serialize_payment_method(m) for m in methods]},
    )


def create_payment_method(method_in: PaymentMethodCreate, db: Session):
    method = PaymentMethod(
        Name=method_in.Name, IconURL=method_in.IconURL, IsActive=method_in.IsActive
    )
    apply_details(method, method_in.Details)
    try:
        db.add(method)
        db.commit()
        db.refresh(method)
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving payment method {method_in.Name}: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to save payment method",
            details={"error": str(e)},
        )
    return success_response(
        message="Payment method added successfully",
        data=serialize_payment_method(method),
        status_code=status.HTTP_201_CREATED,
    )


def update_payment_method(method_id: str, method_update: PaymentMethodUpdate, db: Session):
    method = _get_or_404(method_id, db)

    update_data = method_update.model_dump(exclude_unset=True, exclude={"Details"})
    for key, value in update_data.items():
        setattr(method, key, value)
    if method_update.Details is not None:
        apply_details(method, method_update.Details)

    try:
        db.commit()
        db.refresh(method)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating payment method {method_id}: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to save payment method",
            details={"error": str(e)},
        )
    return success_response(
        message="Payment method updated successfully",
        data=serialize_payment_method(method),
    )


def toggle_payment_method_status(method_id: str, db: Session):
    method = _get_or_404(method_id, db)
    method.IsActive = not method.IsActive
    db.commit()
    return success_response(
        message=f"Payment method {'activated' if method.IsActive else 'deactivated'} successfully",
        data={"PaymentMethodID": method.PaymentMethodID, "IsActive": method.IsActive},
    )


def delete_payment_method(method_id: str, db: Session):
    method = _get_or_404(method_id, db)

    transaction_count = (
        db.query(Transaction).filter(Transaction.PaymentMethodID == method_id).count()
    )
    if transaction_count > 0:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=f"Cannot delete payment method with {transaction_count} transaction(s); deactivate it instead",
        )

    try:
        db.delete(method)
        db.commit()
        return success_response(
            message="Payment method deleted successfully",
            data={"PaymentMethodID": method_id},
        )
    except Exception as e:
        db.rollback()
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to delete payment method",
            details={"error": str(e)},
        )
