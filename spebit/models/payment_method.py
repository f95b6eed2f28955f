from sqlalchemy import CheckConstraint, Column, String, DateTime, Boolean
from sqlalchemy.sql import func
from spebit.core.database import Base
from spebit.models.user import generate_uuid

UPI = "upi"
EMAIL = "email"
BANK_TRANSFER = "bank_transfer"

# Columns that carry the details of each kind
KIND_FIELDS = {
    UPI: ("UpiID",),
    EMAIL: ("EmailID",),
    BANK_TRANSFER: ("BankName", "AccountHolderName", "AccountNumber", "IFSCCode"),
}
DETAIL_FIELDS = tuple(f for fields in KIND_FIELDS.values() for f in fields)


class PaymentMethod(Base):
    __tablename__ = "PaymentMethods"

    PaymentMethodID = Column(String(36), primary_key=True, default=generate_uuid)
    Name = Column(String(100), nullable=False)
    IconURL = Column(String(500), nullable=True)
    IsActive = Column(Boolean, nullable=False, default=True)
    Kind = Column(
        String(20),
        CheckConstraint("Kind IN ('upi', 'email', 'bank_transfer')"),
        nullable=False,
    )
    UpiID = Column(String(100), nullable=True)
    EmailID = Column(String(255), nullable=True)
    BankName = Column(String(100), nullable=True)
    AccountHolderName = Column(String(100), nullable=True)
    AccountNumber = Column(String(50), nullable=True)
    IFSCCode = Column(String(20), nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
