# spebit/routes/admins.py
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.orm import Session
from spebit.core.rate_limiter import limiter, invalidate_cache

# Controllers
from spebit.controllers.admin_controller import (
    bootstrap_admin,
    get_all_users,
    get_analytics_summary,
    get_user_by_id,
    get_user_transactions_for_admin,
    toggle_user_block,
    update_user_role,
)
from spebit.controllers.crypto_controller import (
    create_cryptocurrency,
    delete_cryptocurrency,
    get_all_cryptocurrencies,
    toggle_cryptocurrency_status,
    update_cryptocurrency,
)
from spebit.controllers.payment_method_controller import (
    create_payment_method,
    delete_payment_method,
    list_payment_methods,
    toggle_payment_method_status,
    update_payment_method,
)
from spebit.controllers.referral_controller import list_reward_tasks, retry_reward_task
from spebit.controllers.transactions.admins import (
    approve_transaction,
    get_all_transactions,
    get_screenshot_url,
    get_transaction_by_id,
    reject_transaction,
)

# Schemas
from spebit.schemas.crypto_schema import CryptocurrencyCreate, CryptocurrencyUpdate
from spebit.schemas.payment_method_schema import PaymentMethodCreate, PaymentMethodUpdate
from spebit.schemas.transaction_schema import AdminDecision
from spebit.schemas.user_schema import Order, RoleUpdate

# Core
from spebit.core.auth import get_current_user
from spebit.core.database import get_db
from spebit.core.price_monitor import PriceMonitor
from spebit.core.rbac import require_admin
from spebit.core.realtime import RealtimeHub, get_realtime
from spebit.core.schemas import BaseResponse, PaginatedResponse
from spebit.core.storage import ObjectStorage, get_storage

# Models
from spebit.models.user import User
import os

router = APIRouter()


def get_price_monitor(request: Request) -> PriceMonitor:
    return request.app.state.price_monitor


# <========== Admin bootstrap & analytics ==========>
@router.post("/bootstrap", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def bootstrap(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return bootstrap_admin(current_user, db)


@router.get("/analytics/summary", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def analytics_summary(
    request: Request,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_analytics_summary(db)


# <========== Users ==========>
@router.get("/users", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    is_blocked: Optional[bool] = Query(None),
    order: Optional[Order] = Query(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_all_users(db, page, per_page, search, is_blocked, order)


@router.get("/users/{user_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def user_detail(
    request: Request,
    user_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_user_by_id(user_id, db)


@router.get("/users/{user_id}/transactions", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def user_transactions(
    request: Request,
    user_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_user_transactions_for_admin(user_id, db, page, per_page)


@router.put("/users/{user_id}/block", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def toggle_block(
    request: Request,
    user_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return toggle_user_block(user_id, current_admin.UserID, db)


@router.put("/users/{user_id}/role", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def change_role(
    request: Request,
    user_id: str,
    role_update: RoleUpdate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return update_user_role(user_id, role_update, current_admin.UserID, db)


# <========== Cryptocurrencies ==========>
@router.get("/cryptocurrencies", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def list_cryptocurrencies(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_all_cryptocurrencies(db, page, per_page, is_active, search)


@router.post(
    "/cryptocurrencies", response_model=BaseResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
async def add_cryptocurrency(
    request: Request,
    crypto: CryptocurrencyCreate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    price_monitor: PriceMonitor = Depends(get_price_monitor),
):
    result = await create_cryptocurrency(crypto, db, price_monitor)
    invalidate_cache("cryptocurrencies:")
    return result


@router.put("/cryptocurrencies/{crypto_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
async def edit_cryptocurrency(
    request: Request,
    crypto_id: str,
    crypto_update: CryptocurrencyUpdate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    price_monitor: PriceMonitor = Depends(get_price_monitor),
):
    result = await update_cryptocurrency(crypto_id, crypto_update, db, price_monitor)
    invalidate_cache("cryptocurrencies:")
    return result


@router.put("/cryptocurrencies/{crypto_id}/toggle", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def toggle_cryptocurrency(
    request: Request,
    crypto_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = toggle_cryptocurrency_status(crypto_id, db)
    invalidate_cache("cryptocurrencies:")
    return result


@router.delete("/cryptocurrencies/{crypto_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def remove_cryptocurrency(
    request: Request,
    crypto_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = delete_cryptocurrency(crypto_id, db)
    invalidate_cache("cryptocurrencies:")
    return result


# <========== Payment methods ==========>
@router.get("/payment-methods", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def all_payment_methods(
    request: Request,
    is_active: Optional[bool] = Query(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return list_payment_methods(db, is_active)


@router.post(
    "/payment-methods", response_model=BaseResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def add_payment_method(
    request: Request,
    method: PaymentMethodCreate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = create_payment_method(method, db)
    invalidate_cache("payment_methods:")
    return result


@router.put("/payment-methods/{method_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def edit_payment_method(
    request: Request,
    method_id: str,
    method_update: PaymentMethodUpdate,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = update_payment_method(method_id, method_update, db)
    invalidate_cache("payment_methods:")
    return result


@router.put("/payment-methods/{method_id}/toggle", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def toggle_payment_method(
    request: Request,
    method_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = toggle_payment_method_status(method_id, db)
    invalidate_cache("payment_methods:")
    return result


@router.delete("/payment-methods/{method_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def remove_payment_method(
    request: Request,
    method_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = delete_payment_method(method_id, db)
    invalidate_cache("payment_methods:")
    return result


# <========== Transactions ==========>
@router.get("/transactions", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def list_transactions(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    transaction_status: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_all_transactions(db, page, per_page, transaction_status, user_id, search)


@router.get("/transactions/{transaction_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def transaction_detail(
    request: Request,
    transaction_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_transaction_by_id(transaction_id, db)


@router.get("/transactions/{transaction_id}/screenshot", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def transaction_screenshot(
    request: Request,
    transaction_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    return get_screenshot_url(transaction_id, db, storage)


@router.post("/transactions/{transaction_id}/approve", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
async def approve(
    request: Request,
    transaction_id: str,
    background_tasks: BackgroundTasks,
    decision: Optional[AdminDecision] = None,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await approve_transaction(
        transaction_id, decision or AdminDecision(), current_admin, db, hub, background_tasks
    )


@router.post("/transactions/{transaction_id}/reject", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
async def reject(
    request: Request,
    transaction_id: str,
    background_tasks: BackgroundTasks,
    decision: Optional[AdminDecision] = None,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await reject_transaction(
        transaction_id, decision or AdminDecision(), current_admin, db, hub, background_tasks
    )


# <========== Referral rewards ==========>
@router.get("/referral-rewards", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def reward_tasks(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    task_status: Optional[str] = Query(None),
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return list_reward_tasks(db, page, per_page, task_status)


@router.post("/referral-rewards/{task_id}/retry", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_ADMIN_CRITICAL", "10/minute"))
def retry_reward(
    request: Request,
    task_id: str,
    current_admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return retry_reward_task(task_id, db)
