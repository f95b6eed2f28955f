import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from fastapi import BackgroundTasks, UploadFile, status
from sqlalchemy import desc
from sqlalchemy.orm import Session
from spebit.controllers.referral_controller import enqueue_reward_task
from spebit.controllers.transactions.lifecycle import (
    BLOCKCHAIN_SUBMITTED,
    OWNER,
    PAYMENT_UPLOADED,
    compute_crypto_amount,
    ensure_transition,
)
from spebit.core.config import PROCESSING_WAIT_SECONDS
from spebit.core.event_emitter import emit_event
from spebit.core.exceptions import CustomHTTPException, StorageError
from spebit.core.realtime import INSERT, UPDATE, RealtimeHub
from spebit.core.responses import success_response
from spebit.core.schemas import PaginatedResponse
from spebit.core.storage import ObjectStorage, build_screenshot_key
from spebit.core.utils import paginate
from spebit.models.cryptocurrency import Cryptocurrency
from spebit.models.payment_method import PaymentMethod
from spebit.models.transaction import Transaction
from spebit.models.user import User
from spebit.schemas.transaction_schema import (
    BlockchainDetails,
    TransactionListItem,
    TransactionResponse,
)

logger = logging.getLogger(__name__)

TABLE = Transaction.__tablename__


def transaction_row(transaction: Transaction) -> dict:
    return TransactionResponse.model_validate(transaction).model_dump(mode="json")


def _missing_fields():
    return CustomHTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        message="Please fill all required fields and upload payment screenshot",
    )


def _submit_failed(error: Exception):
    return CustomHTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="Failed to submit payment",
        details={"error": str(error)},
    )


async def submit_payment(
    user: User,
    crypto_id: Optional[str],
    rupee_amount: Optional[str],
    payment_method_id: Optional[str],
    screenshot: Optional[UploadFile],
    db: Session,
    storage: ObjectStorage,
    hub: RealtimeHub,
    background_tasks: Optional[BackgroundTasks] = None,
):
    if not crypto_id or not rupee_amount or not payment_method_id or screenshot is None:
        raise _missing_fields()

    try:
        amount = Decimal(str(rupee_amount).strip())
    except InvalidOperation:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, message="Invalid rupee amount"
        )
    if not amount.is_finite() or amount <= 0:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Rupee amount must be greater than zero",
        )
    if amount.as_tuple().exponent < -2:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Invalid rupee amount",
            details={"error": "Rupee amount may have at most 2 decimal places"},
        )

    crypto = (
        db.query(Cryptocurrency)
        .filter(Cryptocurrency.CryptoID == crypto_id, Cryptocurrency.IsActive == True)
        .first()
    )
    if not crypto:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Cryptocurrency not found"
        )
    if not crypto.CurrentPrice or crypto.CurrentPrice <= 0:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Cryptocurrency has no valid price",
        )

    payment_method = (
        db.query(PaymentMethod)
        .filter(
            PaymentMethod.PaymentMethodID == payment_method_id,
            PaymentMethod.IsActive == True,
        )
        .first()
    )
    if not payment_method:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Payment method not found"
        )

    if not (screenshot.content_type or "").startswith("image/"):
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Payment screenshot must be an image",
        )
    content = await screenshot.read()
    if not content:
        raise _missing_fields()

    crypto_amount = compute_crypto_amount(amount, crypto.CurrentPrice)
    key = build_screenshot_key(user.UserID, screenshot.filename)

    try:
        storage.upload(key, content, screenshot.content_type)
    except StorageError as e:
        logger.error(f"Screenshot upload failed for user {user.UserID}: {e}")
        raise _submit_failed(e)

    transaction = Transaction(
        UserID=user.UserID,
        CryptoID=crypto.CryptoID,
        PaymentMethodID=payment_method.PaymentMethodID,
        TransactionType="buy",
        Amount=crypto_amount,
        PricePerUnit=crypto.CurrentPrice,
        TotalAmount=amount,
        RupeeAmount=amount,
        Status=PAYMENT_UPLOADED,
        PaymentScreenshotURL=key,
    )
    try:
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving transaction for user {user.UserID}: {e}")
        try:
            storage.delete(key)
        except StorageError as cleanup_error:
            logger.error(f"Orphaned screenshot {key}: {cleanup_error}")
        raise _submit_failed(e)

    buy_count = (
        db.query(Transaction)
        .filter(Transaction.UserID == user.UserID, Transaction.TransactionType == "buy")
        .count()
    )
    if buy_count == 1:
        # First purchase; the reward never blocks the response
        try:
            enqueue_reward_task(user.UserID, transaction.TransactionID, db, background_tasks)
        except Exception as e:
            db.rollback()
            logger.error(f"Could not queue referral reward for user {user.UserID}: {e}")

    row = transaction_row(transaction)
    await hub.publish_change(TABLE, INSERT, transaction.TransactionID, new=row)
    await emit_event(
        hub,
        "transaction_created",
        {
            "transaction_id": transaction.TransactionID,
            "user_id": user.UserID,
            "crypto_symbol": crypto.Symbol,
            "rupee_amount": str(amount),
            "status": transaction.Status,
        },
        admins=True,
        background_tasks=background_tasks,
    )

    return success_response(
        message="Payment submitted successfully",
        data={"transaction": row, "next_step": 2},
        status_code=status.HTTP_201_CREATED,
    )


def _get_owned_transaction(user_id: str, transaction_id: str, db: Session) -> Transaction:
    transaction = (
        db.query(Transaction)
        .filter(Transaction.TransactionID == transaction_id, Transaction.UserID == user_id)
        .first()
    )
    if not transaction:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Transaction not found"
        )
    return transaction


async def submit_blockchain_details(
    user_id: str,
    transaction_id: str,
    details: BlockchainDetails,
    db: Session,
    hub: RealtimeHub,
):
    transaction = _get_owned_transaction(user_id, transaction_id, db)
    ensure_transition(transaction.Status, BLOCKCHAIN_SUBMITTED, OWNER)

    old = {"Status": transaction.Status}
    updated = (
        db.query(Transaction)
        .filter(
            Transaction.TransactionID == transaction_id,
            Transaction.Status == PAYMENT_UPLOADED,
        )
        .update(
            {
                Transaction.BlockchainNetwork: details.BlockchainNetwork,
                Transaction.ReceiveAddress: details.ReceiveAddress,
                Transaction.Status: BLOCKCHAIN_SUBMITTED,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        # Decided by an admin between the read and the write
        db.rollback()
        db.refresh(transaction)
        ensure_transition(transaction.Status, BLOCKCHAIN_SUBMITTED, OWNER)
    db.commit()
    db.refresh(transaction)

    row = transaction_row(transaction)
    await hub.publish_change(TABLE, UPDATE, transaction_id, new=row, old=old)

    return success_response(
        message="Blockchain details submitted successfully",
        data={
            "transaction": row,
            "next_step": 3,
            "processing_wait_seconds": PROCESSING_WAIT_SECONDS,
            "watch_url": f"/ws/transactions/{transaction_id}",
        },
    )


def history_query(db: Session):
    return (
        db.query(
            Transaction,
            Cryptocurrency.Name.label("CryptoName"),
            Cryptocurrency.Symbol.label("CryptoSymbol"),
            PaymentMethod.Name.label("PaymentMethodName"),
        )
        .outerjoin(Cryptocurrency, Cryptocurrency.CryptoID == Transaction.CryptoID)
        .outerjoin(
            PaymentMethod, PaymentMethod.PaymentMethodID == Transaction.PaymentMethodID
        )
    )


def history_item(result) -> dict:
    transaction, crypto_name, crypto_symbol, payment_method_name = result
    return TransactionListItem(
        **TransactionResponse.model_validate(transaction).model_dump(),
        CryptoName=crypto_name,
        CryptoSymbol=crypto_symbol,
        PaymentMethodName=payment_method_name,
    ).model_dump(mode="json")


def get_user_transactions(
    user_id: str,
    db: Session,
    page: int = 1,
    per_page: int = 10,
    transaction_status: Optional[str] = None,
):
    query = history_query(db).filter(Transaction.UserID == user_id)
    if transaction_status:
        query = query.filter(Transaction.Status == transaction_status)
    query = query.order_by(desc(Transaction.CreatedAt))

    results, total_items, total_pages = paginate(query, page, per_page)
    return PaginatedResponse(
        success=True,
        message="Transactions retrieved successfully",
        data={"items": [history_item(r) for r in results]},
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
    )


def get_user_transaction(user_id: str, transaction_id: str, db: Session):
    result = (
        history_query(db)
        .filter(Transaction.TransactionID == transaction_id, Transaction.UserID == user_id)
        .first()
    )
    if not result:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Transaction not found"
        )
    return success_response(
        message="Transaction retrieved successfully", data=history_item(result)
    )
