from sqlalchemy import (
    CheckConstraint,
    Column,
    String,
    DateTime,
    DECIMAL,
    ForeignKey,
    Text,
)
from sqlalchemy.sql import func
from spebit.core.database import Base
from spebit.models.user import generate_uuid


class Transaction(Base):
    __tablename__ = "Transactions"

    TransactionID = Column(String(36), primary_key=True, default=generate_uuid)
    UserID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    CryptoID = Column(
        String(36), ForeignKey("Cryptocurrencies.CryptoID", ondelete="NO ACTION"), nullable=False
    )
    PaymentMethodID = Column(
        String(36),
        ForeignKey("PaymentMethods.PaymentMethodID", ondelete="SET NULL"),
        nullable=True,
    )
    TransactionType = Column(
        String(4), CheckConstraint("TransactionType IN ('buy', 'sell')"), nullable=False
    )
    Amount = Column(DECIMAL(28, 8), nullable=False)
    PricePerUnit = Column(DECIMAL(28, 8), nullable=False)
    TotalAmount = Column(DECIMAL(19, 4), nullable=False)
    RupeeAmount = Column(DECIMAL(19, 4), nullable=True)
    Status = Column(
        String(30),
        CheckConstraint(
            "Status IN ('payment_uploaded', 'blockchain_submitted', 'approved', 'rejected')"
        ),
        nullable=False,
        index=True,
    )
    PaymentScreenshotURL = Column(String(500), nullable=True)
    BlockchainNetwork = Column(String(100), nullable=True)
    ReceiveAddress = Column(String(255), nullable=True)
    AdminNotes = Column(Text, nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
