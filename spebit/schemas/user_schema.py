from pydantic import BaseModel, EmailStr, constr, field_validator, ConfigDict
from datetime import datetime
from typing import Optional
from enum import Enum


class UserCreate(BaseModel):
    Email: EmailStr
    Password: constr(min_length=8, max_length=255)  # type: ignore
    FullName: constr(min_length=1, max_length=100)  # type: ignore
    MobileNumber: Optional[constr(pattern=r"^\d{6,15}$")] = None  # type: ignore
    CountryCode: Optional[constr(pattern=r"^\+\d{1,4}$")] = None  # type: ignore
    ReferralCode: Optional[constr(max_length=20)] = None  # type: ignore

    @field_validator("ReferralCode")
    def normalize_referral_code(cls, v):
        if v is None:
            return v
        v = v.strip().upper()
        return v or None


class UserLogin(BaseModel):
    Email: EmailStr
    Password: constr(min_length=1, max_length=255)  # type: ignore


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    Email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    NewPassword: constr(min_length=8, max_length=255)  # type: ignore


class UserUpdate(BaseModel):
    FullName: Optional[constr(min_length=1, max_length=100)] = None  # type: ignore
    MobileNumber: Optional[constr(pattern=r"^\d{6,15}$")] = None  # type: ignore
    CountryCode: Optional[constr(pattern=r"^\+\d{1,4}$")] = None  # type: ignore


class UserResponseData(BaseModel):
    UserID: str
    Email: str
    FullName: Optional[str] = None
    MobileNumber: Optional[str] = None
    CountryCode: Optional[str] = None
    IsBlocked: bool
    ReferralCount: int
    CreatedAt: Optional[datetime] = None
    LastLogin: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class RoleName(str, Enum):
    admin = "admin"
    user = "user"


class RoleUpdate(BaseModel):
    Role: RoleName
    Grant: bool = True


class Order(str, Enum):
    asc = "asc"
    desc = "desc"

