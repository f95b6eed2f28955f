from sqlalchemy import Column, String, DateTime, DECIMAL, ForeignKey
from sqlalchemy.sql import func, text
from spebit.core.database import Base
from spebit.models.user import generate_uuid


class UserWallet(Base):
    __tablename__ = "UserWallets"

    WalletID = Column(String(36), primary_key=True, default=generate_uuid)
    UserID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), unique=True, nullable=False
    )
    Balance = Column(DECIMAL(19, 4), nullable=False, default=0, server_default=text("0"))
    ReferralEarnings = Column(
        DECIMAL(19, 4), nullable=False, default=0, server_default=text("0")
    )
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
