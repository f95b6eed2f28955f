import logging
from typing import Optional
from fastapi import status
from sqlalchemy import asc, desc
from sqlalchemy.orm import Session
from spebit.core.exceptions import CustomHTTPException
from spebit.core.price_monitor import PriceMonitor
from spebit.core.responses import success_response
from spebit.core.schemas import PaginatedResponse
from spebit.core.utils import paginate
from spebit.models.cryptocurrency import Cryptocurrency
from spebit.models.transaction import Transaction
from spebit.schemas.crypto_schema import (
    CryptocurrencyCreate,
    CryptocurrencyResponse,
    CryptocurrencyUpdate,
)

logger = logging.getLogger(__name__)


def _serialize(crypto: Cryptocurrency) -> dict:
    return CryptocurrencyResponse.model_validate(crypto).model_dump(mode="json")


def _get_or_404(crypto_id: str, db: Session) -> Cryptocurrency:
    crypto = db.query(Cryptocurrency).filter(Cryptocurrency.CryptoID == crypto_id).first()
    if not crypto:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Cryptocurrency not found"
        )
    return crypto


def list_active_cryptocurrencies(db: Session):
    cryptocurrencies = (
        db.query(Cryptocurrency)
        .filter(Cryptocurrency.IsActive == True)
        .order_by(desc(Cryptocurrency.CurrentPrice))
        .all()
    )
    return success_response(
        message="Cryptocurrencies retrieved successfully",
        data={"items": [_serialize(c) for c in cryptocurrencies]},
    )


def get_active_cryptocurrency(crypto_id: str, db: Session):
    crypto = _get_or_404(crypto_id, db)
    if not crypto.IsActive:
        raise CustomHTTPException(
            status_code=status.HTTP_404_NOT_FOUND, message="Cryptocurrency not found"
        )
    return success_response(
        message="Cryptocurrency retrieved successfully", data=_serialize(crypto)
    )


def get_all_cryptocurrencies(
    db: Session,
    page: int = 1,
    per_page: int = 10,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
):
    query = db.query(Cryptocurrency)
    if is_active is not None:
        query = query.filter(Cryptocurrency.IsActive == is_active)
    if search:
        query = query.filter(
            Cryptocurrency.Name.ilike(f"%{search}%")
            | Cryptocurrency.Symbol.ilike(f"%{search}%")
        )
    query = query.order_by(desc(Cryptocurrency.CreatedAt), asc(Cryptocurrency.Symbol))
    cryptocurrencies, total_items, total_pages = paginate(query, page, per_page)
    return PaginatedResponse(
        success=True,
        message="Cryptocurrencies retrieved successfully",
        data={"items": [_serialize(c) for c in cryptocurrencies]},
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
    )


async def create_cryptocurrency(
    crypto_in: CryptocurrencyCreate, db: Session, price_monitor: PriceMonitor
):
    crypto = Cryptocurrency(**crypto_in.model_dump())
    try:
        db.add(crypto)
        db.commit()
        db.refresh(crypto)
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving cryptocurrency {crypto_in.Symbol}: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to save cryptocurrency",
            details={"error": str(e)},
        )

    if crypto.IsActive:
        await price_monitor.notify_new_crypto(crypto.Symbol, crypto.Name, crypto.CurrentPrice)
    return success_response(
        message="Cryptocurrency added successfully",
        data=_serialize(crypto),
        status_code=status.HTTP_201_CREATED,
    )


async def update_cryptocurrency(
    crypto_id: str,
    crypto_update: CryptocurrencyUpdate,
    db: Session,
    price_monitor: PriceMonitor,
):
    crypto = _get_or_404(crypto_id, db)
    previous_price = crypto.CurrentPrice

    for key, value in crypto_update.model_dump(exclude_unset=True).items():
        setattr(crypto, key, value)

    try:
        db.commit()
        db.refresh(crypto)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating cryptocurrency {crypto_id}: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to save cryptocurrency",
            details={"error": str(e)},
        )

    if crypto_update.CurrentPrice is not None:
        await price_monitor.update_price(
            crypto.Symbol, crypto.Name, crypto.CurrentPrice, previous_price
        )
    return success_response(
        message="Cryptocurrency updated successfully", data=_serialize(crypto)
    )


def toggle_cryptocurrency_status(crypto_id: str, db: Session):
    crypto = _get_or_404(crypto_id, db)
    crypto.IsActive = not crypto.IsActive
    db.commit()
    return success_response(
        message=f"Cryptocurrency {'activated' if crypto.IsActive else 'deactivated'} successfully",
        data={"CryptoID": crypto.CryptoID, "IsActive": crypto.IsActive},
    )


def delete_cryptocurrency(crypto_id: str, db: Session):
    crypto = _get_or_404(crypto_id, db)

    transaction_count = (
        db.query(Transaction).filter(Transaction.CryptoID == crypto_id).count()
    )
    if transaction_count > 0:
        raise CustomHTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=f"Cannot delete cryptocurrency with {transaction_count} transaction(s); deactivate it instead",
        )

    try:
        db.delete(crypto)
        db.commit()
        return success_response(
            message="Cryptocurrency deleted successfully", data={"CryptoID": crypto_id}
        )
    except Exception as e:
        db.rollback()
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Failed to delete cryptocurrency",
            details={"error": str(e)},
        )
