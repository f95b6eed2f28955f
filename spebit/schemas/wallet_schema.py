from pydantic import BaseModel, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional


class WalletResponse(BaseModel):
    WalletID: str
    UserID: str
    Balance: Decimal
    ReferralEarnings: Decimal
    model_config = ConfigDict(from_attributes=True)


class ReferralResponse(BaseModel):
    ReferralID: str
    ReferrerID: str
    ReferredID: str
    ReferralCode: str
    Earnings: Decimal
    RewardedAt: Optional[datetime] = None
    CreatedAt: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class RewardTaskResponse(BaseModel):
    TaskID: str
    ReferredUserID: str
    TransactionID: Optional[str] = None
    Status: str
    Attempts: int
    LastError: Optional[str] = None
    CreatedAt: Optional[datetime] = None
    UpdatedAt: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
