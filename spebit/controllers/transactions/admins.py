import logging
from typing import Optional
from fastapi import BackgroundTasks, status
from sqlalchemy import desc, or_
from sqlalchemy.orm import Session
from spebit.controllers.transactions.lifecycle import (
    ADMIN,
    APPROVED,
    REJECTED,
    STATUSES,
    allowed_sources,
    ensure_transition,
)
from spebit.controllers.transactions.users import (
    TABLE,
    history_query,
    history_item,
    transaction_row,
)
from spebit.core.event_emitter import emit_event
from spebit.core.exceptions import CustomHTTPException
from spebit.core.realtime import UPDATE, RealtimeHub
from spebit.core.responses import success_response
from spebit.core.schemas import PaginatedResponse
from spebit.core.storage import ObjectStorage
from spebit.core.utils import paginate
from spebit.models.transaction import Transaction
from spebit.models.user import User
from spebit.schemas.transaction_schema import AdminDecision

logger = logging.getLogger(__name__)


def get_all_transactions(
    db: Session,
    page: int = 1,
    per_page: int = 10,
    transaction_status: Optional[str] = None,
    user_id: Optional[str] = None,
    search: Optional[str] = None,
):
    if transaction_status and transaction_status not in STATUSES:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Invalid transaction status value",
        )

    query = history_query(db)
    if transaction_status:
        query = query.filter(Transaction.Status == transaction_status)
    if user_id:
        query = query.filter(Transaction.UserID == user_id)
    if search:
        query = query.filter(
            or_(
                Transaction.TransactionID.ilike(f"%{search}%"),
                Transaction.ReceiveAddress.ilike(f"%{search}%"),
            )
        )
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


def get_transaction_by_id(transaction_id: str, db: Session):
    result = history_query(db).filter(Transaction.TransactionID == transaction_id).first()
    if not result:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Transaction not found"
        )
    return success_response(
        message="Transaction details retrieved successfully", data=history_item(result)
    )


async def decide_transaction(
    transaction_id: str,
    new_status: str,
    decision: AdminDecision,
    current_admin: User,
    db: Session,
    hub: RealtimeHub,
    background_tasks: Optional[BackgroundTasks] = None,
):
    transaction = (
        db.query(Transaction).filter(Transaction.TransactionID == transaction_id).first()
    )
    if not transaction:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Transaction not found"
        )
    ensure_transition(transaction.Status, new_status, ADMIN)

    old = {"Status": transaction.Status}
    values = {Transaction.Status: new_status}
    if decision.admin_notes is not None:
        values[Transaction.AdminNotes] = decision.admin_notes

    # Only moves out of a state the admin may still decide from
    updated = (
        db.query(Transaction)
        .filter(
            Transaction.TransactionID == transaction_id,
            Transaction.Status.in_(allowed_sources(new_status, ADMIN)),
        )
        .update(values, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        db.refresh(transaction)
        ensure_transition(transaction.Status, new_status, ADMIN)
        raise CustomHTTPException(
            status_code=status.HTTP_409_CONFLICT,
            message="Transaction was modified concurrently, please retry",
        )

    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving decision for transaction {transaction_id}: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message=f"Failed to {'approve' if new_status == APPROVED else 'reject'} transaction",
            details={"error": str(e)},
        )
    db.refresh(transaction)
    logger.info(f"Transaction {transaction_id} {new_status} by admin {current_admin.UserID}")

    row = transaction_row(transaction)
    await hub.publish_change(TABLE, UPDATE, transaction_id, new=row, old=old)

    notice = {
        "transaction_id": transaction_id,
        "status": new_status,
        "admin_notes": transaction.AdminNotes,
    }
    await emit_event(
        hub,
        "transaction_status_updated",
        notice,
        user_id=transaction.UserID,
        background_tasks=background_tasks,
    )
    await emit_event(
        hub,
        "transaction_processed",
        {**notice, "admin_id": current_admin.UserID},
        admins=True,
        background_tasks=background_tasks,
    )

    return success_response(
        message=f"Transaction {new_status} successfully",
        data=row,
    )


async def approve_transaction(
    transaction_id: str,
    decision: AdminDecision,
    current_admin: User,
    db: Session,
    hub: RealtimeHub,
    background_tasks: Optional[BackgroundTasks] = None,
):
    return await decide_transaction(
        transaction_id, APPROVED, decision, current_admin, db, hub, background_tasks
    )


async def reject_transaction(
    transaction_id: str,
    decision: AdminDecision,
    current_admin: User,
    db: Session,
    hub: RealtimeHub,
    background_tasks: Optional[BackgroundTasks] = None,
):
    return await decide_transaction(
        transaction_id, REJECTED, decision, current_admin, db, hub, background_tasks
    )


def get_screenshot_url(transaction_id: str, db: Session, storage: ObjectStorage):
    transaction = (
        db.query(Transaction).filter(Transaction.TransactionID == transaction_id).first()
    )
    if not transaction:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Transaction not found"
        )
    if not transaction.PaymentScreenshotURL:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            message="No payment screenshot for this transaction",
        )
    return success_response(
        message="Screenshot URL resolved successfully",
        data={
            "TransactionID": transaction_id,
            "key": transaction.PaymentScreenshotURL,
            "url": storage.public_url(transaction.PaymentScreenshotURL),
        },
    )
