from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional


class CryptocurrencyCreate(BaseModel):
    Name: str = Field(min_length=1, max_length=100)
    Symbol: str = Field(min_length=1, max_length=20)
    CurrentPrice: Decimal = Field(gt=0)
    LogoURL: Optional[str] = Field(default=None, max_length=500)
    IsActive: bool = True

    @field_validator("Symbol")
    def upper_symbol(cls, v):
        return v.strip().upper()


class CryptocurrencyUpdate(BaseModel):
    Name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    Symbol: Optional[str] = Field(default=None, min_length=1, max_length=20)
    CurrentPrice: Optional[Decimal] = Field(default=None, gt=0)
    LogoURL: Optional[str] = Field(default=None, max_length=500)
    IsActive: Optional[bool] = None

    @field_validator("Symbol")
    def upper_symbol(cls, v):
        return v.strip().upper() if v is not None else v


class CryptocurrencyResponse(BaseModel):
    CryptoID: str
    Name: str
    Symbol: str
    CurrentPrice: Decimal
    LogoURL: Optional[str] = None
    IsActive: bool
    CreatedAt: Optional[datetime] = None
    UpdatedAt: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
