import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from fastapi import BackgroundTasks, status
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from spebit.core.config import APP_ORIGIN, REFERRAL_CODE_PREFIX, REFERRAL_REWARD_AMOUNT
from spebit.core.database import SessionLocal
from spebit.core.exceptions import CustomHTTPException
from spebit.core.responses import success_response
from spebit.core.schemas import PaginatedResponse
from spebit.core.utils import paginate
from spebit.models.referral import Referral, ReferralCode, ReferralRewardTask
from spebit.models.user import User
from spebit.models.wallet import UserWallet
from spebit.schemas.wallet_schema import ReferralResponse, RewardTaskResponse

logger = logging.getLogger(__name__)

TASK_PENDING = "pending"
TASK_COMPLETED = "completed"
TASK_SKIPPED = "skipped"
TASK_FAILED = "failed"


def generate_referral_code(user_id: str) -> str:
    return f"{REFERRAL_CODE_PREFIX}{user_id[:8].upper()}"


def build_referral_link(code: str) -> str:
    return f"{APP_ORIGIN}/auth?ref={code}"


def get_or_create_referral_code(user_id: str, db: Session) -> str:
    existing = db.query(ReferralCode).filter(ReferralCode.UserID == user_id).first()
    if existing:
        return existing.Code

    code = generate_referral_code(user_id)
    try:
        db.add(ReferralCode(UserID=user_id, Code=code))
        db.commit()
    except IntegrityError:
        # Another request created it first
        db.rollback()
        logger.info(f"Referral code for user {user_id} already created")
    return code


def get_user_referrals(user_id: str, db: Session):
    code = get_or_create_referral_code(user_id, db)
    referrals = (
        db.query(Referral)
        .filter(Referral.ReferrerID == user_id)
        .order_by(desc(Referral.CreatedAt))
        .all()
    )
    return success_response(
        message="Referrals retrieved successfully",
        data={
            "referral_code": code,
            "referral_link": build_referral_link(code),
            "total_referrals": len(referrals),
            "total_earnings": str(sum((r.Earnings or Decimal(0) for r in referrals), Decimal(0))),
            "items": [
                ReferralResponse.model_validate(r).model_dump(mode="json") for r in referrals
            ],
        },
    )


def link_referral(new_user: User, code: str, db: Session) -> bool:
    """Record that ``new_user`` signed up with ``code``. Returns False if nothing was linked."""
    referral_code = db.query(ReferralCode).filter(ReferralCode.Code == code).first()
    if not referral_code or referral_code.UserID == new_user.UserID:
        return False

    db.add(
        Referral(
            ReferrerID=referral_code.UserID,
            ReferredID=new_user.UserID,
            ReferralCode=code,
        )
    )
    db.query(User).filter(User.UserID == referral_code.UserID).update(
        {User.ReferralCount: User.ReferralCount + 1}, synchronize_session=False
    )
    db.commit()
    logger.info(f"User {new_user.UserID} referred by {referral_code.UserID}")
    return True


def apply_referral_reward(
    referred_user_id: str, db: Session, amount: Decimal = REFERRAL_REWARD_AMOUNT
) -> bool:
    """
    Credit the referrer of ``referred_user_id`` with ``amount``.

    Both writes happen in the caller's transaction: the wallet increment is a
    single ``UPDATE ... SET ReferralEarnings = ReferralEarnings + amount`` and
    the referral row is only marked if it was not rewarded before. Returns
    False, with nothing written, when there is no referral, the referral is
    to oneself, the referrer has no wallet, or it was already rewarded.
    """
    referral = db.query(Referral).filter(Referral.ReferredID == referred_user_id).first()
    if not referral or referral.ReferrerID == referred_user_id:
        return False

    credited = (
        db.query(UserWallet)
        .filter(UserWallet.UserID == referral.ReferrerID)
        .update(
            {UserWallet.ReferralEarnings: UserWallet.ReferralEarnings + amount},
            synchronize_session=False,
        )
    )
    if not credited:
        return False

    marked = (
        db.query(Referral)
        .filter(Referral.ReferralID == referral.ReferralID, Referral.RewardedAt.is_(None))
        .update(
            {Referral.Earnings: amount, Referral.RewardedAt: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    if not marked:
        db.rollback()
        return False
    return True


def enqueue_reward_task(
    referred_user_id: str,
    transaction_id: Optional[str],
    db: Session,
    background_tasks: Optional[BackgroundTasks] = None,
) -> ReferralRewardTask:
    task = ReferralRewardTask(
        ReferredUserID=referred_user_id,
        TransactionID=transaction_id,
        Status=TASK_PENDING,
        Attempts=0,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    if background_tasks is not None:
        background_tasks.add_task(run_reward_task, task.TaskID)
    return task


def process_reward_task(task_id: str, db: Session) -> str:
    task = db.query(ReferralRewardTask).filter(ReferralRewardTask.TaskID == task_id).first()
    if not task:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Reward task not found"
        )
    if task.Status in (TASK_COMPLETED, TASK_SKIPPED):
        return task.Status

    referred_user_id = task.ReferredUserID
    try:
        rewarded = apply_referral_reward(referred_user_id, db)
        task.Attempts = (task.Attempts or 0) + 1
        task.Status = TASK_COMPLETED if rewarded else TASK_SKIPPED
        task.LastError = None
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Referral reward task {task_id} for user {referred_user_id} failed: {e}")
        task.Attempts = (task.Attempts or 0) + 1
        task.Status = TASK_FAILED
        task.LastError = str(e)
        db.commit()
    return task.Status


def run_reward_task(task_id: str) -> None:
    """Background entry point; owns its database session."""
    db = SessionLocal()
    try:
        outcome = process_reward_task(task_id, db)
        logger.info(f"Referral reward task {task_id}: {outcome}")
    except Exception as e:
        logger.error(f"Referral reward task {task_id} could not run: {e}")
    finally:
        db.close()


def list_reward_tasks(
    db: Session,
    page: int = 1,
    per_page: int = 10,
    task_status: Optional[str] = None,
):
    query = db.query(ReferralRewardTask)
    if task_status:
        if task_status not in (TASK_PENDING, TASK_COMPLETED, TASK_SKIPPED, TASK_FAILED):
            raise CustomHTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, message="Invalid task status"
            )
        query = query.filter(ReferralRewardTask.Status == task_status)
    query = query.order_by(desc(ReferralRewardTask.CreatedAt))
    tasks, total_items, total_pages = paginate(query, page, per_page)
    return PaginatedResponse(
        success=True,
        message="Reward tasks retrieved successfully",
        data={
            "items": [
                RewardTaskResponse.model_validate(t).model_dump(mode="json") for t in tasks
            ]
        },
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
    )


def retry_reward_task(task_id: str, db: Session):
    task = db.query(ReferralRewardTask).filter(ReferralRewardTask.TaskID == task_id).first()
    if not task:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Reward task not found"
        )
    if task.Status not in (TASK_FAILED, TASK_PENDING):
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Only failed or pending tasks can be retried",
        )

    process_reward_task(task_id, db)
    db.refresh(task)
    return success_response(
        message=f"Reward task {task.Status}",
        data=RewardTaskResponse.model_validate(task).model_dump(mode="json"),
    )
