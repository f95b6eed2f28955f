# spebit/routes/users.py
from typing import Optional
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Query,
    Request,
    UploadFile,
    status,
)
from sqlalchemy.orm import Session

# Controllers
from spebit.controllers.crypto_controller import (
    get_active_cryptocurrency,
    list_active_cryptocurrencies,
)
from spebit.controllers.payment_method_controller import list_payment_methods
from spebit.controllers.referral_controller import get_user_referrals
from spebit.controllers.transactions.users import (
    get_user_transaction,
    get_user_transactions,
    submit_blockchain_details,
    submit_payment,
)
from spebit.controllers.user_controller import (
    confirm_password_reset,
    get_session,
    login_user,
    logout_user,
    refresh_session,
    register_user,
    request_password_reset,
    update_current_user,
)
from spebit.controllers.wallet_controller import get_dashboard, get_wallet

# Schemas
from spebit.schemas.transaction_schema import BlockchainDetails
from spebit.schemas.user_schema import (
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    UserCreate,
    UserLogin,
    UserUpdate,
)

# Models
from spebit.models.user import User

# Core
from spebit.core.auth import get_current_user
from spebit.core.database import get_db
from spebit.core.realtime import RealtimeHub, get_realtime
from spebit.core.schemas import BaseResponse, PaginatedResponse
from spebit.core.storage import ObjectStorage, get_storage
from spebit.core.rate_limiter import (
    limiter,
    CACHE_TTL_SHORT,
    get_cache_key,
    get_from_cache,
    set_to_cache,
)
import os

router = APIRouter()


# <========== Auth ==========>
@router.post("/register", response_model=BaseResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def register(request: Request, user: UserCreate, db: Session = Depends(get_db)):
    return register_user(user, db)


@router.post("/login", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_LOGIN", "5/minute"))
async def login(
    request: Request,
    credentials: UserLogin,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await login_user(credentials, db, hub)


@router.post("/refresh", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def refresh(request: Request, body: RefreshRequest, db: Session = Depends(get_db)):
    return refresh_session(body.refresh_token, db)


@router.post("/logout", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
async def logout(
    request: Request,
    body: Optional[RefreshRequest] = None,
    current_user: User = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await logout_user(current_user, body.refresh_token if body else None, hub)


@router.post("/password-reset", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_LOGIN", "5/minute"))
def password_reset(
    request: Request,
    body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    return request_password_reset(body, db, background_tasks)


@router.post("/password-reset/confirm", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_LOGIN", "5/minute"))
async def password_reset_confirm(
    request: Request,
    body: PasswordResetConfirm,
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await confirm_password_reset(body, db, hub)


@router.get("/me", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def me(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_session(current_user, db)


@router.put("/me", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def update_me(
    request: Request,
    user_update: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return update_current_user(current_user, user_update, db)


# <========== Dashboard ==========>
@router.get("/dashboard", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def dashboard(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_dashboard(current_user, db)


@router.get("/wallet", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def wallet(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_wallet(current_user.UserID, db)


@router.get("/referrals", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def referrals(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_user_referrals(current_user.UserID, db)


@router.get("/cryptocurrencies", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def cryptocurrencies(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cache_key = get_cache_key(request, "cryptocurrencies:active")
    cached = get_from_cache(cache_key)
    if cached:
        return BaseResponse(**cached)
    result = list_active_cryptocurrencies(db)
    set_to_cache(cache_key, result, CACHE_TTL_SHORT)  # 5 min TTL
    return result


@router.get("/cryptocurrencies/{crypto_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def cryptocurrency(
    request: Request,
    crypto_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_active_cryptocurrency(crypto_id, db)


@router.get("/payment-methods", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def payment_methods(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cache_key = get_cache_key(request, "payment_methods:active")
    cached = get_from_cache(cache_key)
    if cached:
        return BaseResponse(**cached)
    result = list_payment_methods(db, is_active=True)
    set_to_cache(cache_key, result, CACHE_TTL_SHORT)  # 5 min TTL
    return result


# <========== Buy flow ==========>
@router.post(
    "/transactions/buy", response_model=BaseResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit(os.getenv("RATE_LIMIT_TRANSACTIONS", "30/hour"))
async def buy(
    request: Request,
    background_tasks: BackgroundTasks,
    crypto_id: Optional[str] = Form(None),
    rupee_amount: Optional[str] = Form(None),
    payment_method_id: Optional[str] = Form(None),
    screenshot: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await submit_payment(
        current_user,
        crypto_id,
        rupee_amount,
        payment_method_id,
        screenshot,
        db,
        storage,
        hub,
        background_tasks,
    )


@router.put("/transactions/{transaction_id}/blockchain", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_TRANSACTIONS", "30/hour"))
async def blockchain_details(
    request: Request,
    transaction_id: str,
    details: BlockchainDetails,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    hub: RealtimeHub = Depends(get_realtime),
):
    return await submit_blockchain_details(
        current_user.UserID, transaction_id, details, db, hub
    )


# <========== History ==========>
@router.get("/transactions", response_model=PaginatedResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def list_user_transactions(
    request: Request,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    transaction_status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_user_transactions(current_user.UserID, db, page, per_page, transaction_status)


@router.get("/transactions/{transaction_id}", response_model=BaseResponse)
@limiter.limit(os.getenv("RATE_LIMIT_USER_DEFAULT", "100/hour"))
def user_transaction(
    request: Request,
    transaction_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_user_transaction(current_user.UserID, transaction_id, db)
