from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Annotated, Literal, Optional, Union


class UpiDetails(BaseModel):
    kind: Literal["upi"] = "upi"
    upi_id: str = Field(min_length=3, max_length=100)


class EmailDetails(BaseModel):
    kind: Literal["email"] = "email"
    email: EmailStr


class BankTransferDetails(BaseModel):
    kind: Literal["bank_transfer"] = "bank_transfer"
    account_holder_name: str = Field(min_length=1, max_length=100)
    bank_name: str = Field(min_length=1, max_length=100)
    account_number: str = Field(min_length=4, max_length=50)
    ifsc_code: str = Field(min_length=4, max_length=20)


PaymentDetails = Annotated[
    Union[UpiDetails, EmailDetails, BankTransferDetails], Field(discriminator="kind")
]


class PaymentMethodCreate(BaseModel):
    Name: str = Field(min_length=1, max_length=100)
    IconURL: Optional[str] = Field(default=None, max_length=500)
    IsActive: bool = True
    Details: PaymentDetails


class PaymentMethodUpdate(BaseModel):
    Name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    IconURL: Optional[str] = Field(default=None, max_length=500)
    IsActive: Optional[bool] = None
    Details: Optional[PaymentDetails] = None


class PaymentMethodResponse(BaseModel):
    PaymentMethodID: str
    Name: str
    IconURL: Optional[str] = None
    IsActive: bool
    Kind: str
    Details: PaymentDetails
    CreatedAt: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
