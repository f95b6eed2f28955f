from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal


class BlockchainDetails(BaseModel):
    BlockchainNetwork: str = Field(max_length=100)
    ReceiveAddress: str = Field(max_length=255)

    @field_validator("BlockchainNetwork", "ReceiveAddress")
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


class AdminDecision(BaseModel):
    admin_notes: Optional[str] = Field(default=None, max_length=2000)


class TransactionResponse(BaseModel):
    TransactionID: str
    UserID: str
    CryptoID: str
    PaymentMethodID: Optional[str] = None
    TransactionType: str
    Amount: Decimal
    PricePerUnit: Decimal
    TotalAmount: Decimal
    RupeeAmount: Optional[Decimal] = None
    Status: str
    PaymentScreenshotURL: Optional[str] = None
    BlockchainNetwork: Optional[str] = None
    ReceiveAddress: Optional[str] = None
    AdminNotes: Optional[str] = None
    CreatedAt: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class TransactionListItem(TransactionResponse):
    CryptoName: Optional[str] = None
    CryptoSymbol: Optional[str] = None
    PaymentMethodName: Optional[str] = None
