import logging
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from spebit.controllers.referral_controller import (
    build_referral_link,
    get_or_create_referral_code,
)
from spebit.core.exceptions import DatabaseError
from spebit.core.rbac import has_role
from spebit.core.responses import success_response
from spebit.models.cryptocurrency import Cryptocurrency
from spebit.models.user import User
from spebit.models.wallet import UserWallet
from spebit.schemas.crypto_schema import CryptocurrencyResponse
from spebit.schemas.user_schema import UserResponseData
from spebit.schemas.wallet_schema import WalletResponse

logger = logging.getLogger(__name__)


def get_or_create_wallet(user_id: str, db: Session) -> UserWallet:
    wallet = db.query(UserWallet).filter(UserWallet.UserID == user_id).first()
    if wallet:
        return wallet

    try:
        wallet = UserWallet(UserID=user_id, Balance=0, ReferralEarnings=0)
        db.add(wallet)
        db.commit()
        db.refresh(wallet)
        return wallet
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        wallet = db.query(UserWallet).filter(UserWallet.UserID == user_id).first()
        if wallet is None:
            raise DatabaseError("Failed to create wallet")
        return wallet


def get_wallet(user_id: str, db: Session):
    wallet = get_or_create_wallet(user_id, db)
    return success_response(
        message="Wallet retrieved successfully",
        data=WalletResponse.model_validate(wallet).model_dump(mode="json"),
    )


def get_dashboard(user: User, db: Session):
    cryptocurrencies = (
        db.query(Cryptocurrency)
        .filter(Cryptocurrency.IsActive == True)
        .order_by(desc(Cryptocurrency.CurrentPrice))
        .all()
    )
    wallet = get_or_create_wallet(user.UserID, db)
    referral_code = get_or_create_referral_code(user.UserID, db)

    return success_response(
        message="Dashboard retrieved successfully",
        data={
            "user": UserResponseData.model_validate(user).model_dump(mode="json"),
            "cryptocurrencies": [
                CryptocurrencyResponse.model_validate(c).model_dump(mode="json")
                for c in cryptocurrencies
            ],
            "wallet": WalletResponse.model_validate(wallet).model_dump(mode="json"),
            "referral_code": referral_code,
            "referral_link": build_referral_link(referral_code),
            "is_admin": has_role(user.UserID, "admin", db),
        },
    )
