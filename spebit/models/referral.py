from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, DECIMAL, ForeignKey, Text
from sqlalchemy.sql import func, text
from spebit.core.database import Base
from spebit.models.user import generate_uuid


class ReferralCode(Base):
    """The code a user shares; one per user."""

    __tablename__ = "ReferralCodes"

    ReferralCodeID = Column(String(36), primary_key=True, default=generate_uuid)
    UserID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), unique=True, nullable=False
    )
    Code = Column(String(20), unique=True, nullable=False, index=True)
    CreatedAt = Column(DateTime, server_default=func.now())


class Referral(Base):
    """A referred user and who referred them."""

    __tablename__ = "Referrals"

    ReferralID = Column(String(36), primary_key=True, default=generate_uuid)
    ReferrerID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    ReferredID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), unique=True, nullable=False
    )
    ReferralCode = Column(String(20), nullable=False)
    Earnings = Column(DECIMAL(19, 4), nullable=False, default=0, server_default=text("0"))
    RewardedAt = Column(DateTime, nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())


class ReferralRewardTask(Base):
    __tablename__ = "ReferralRewardTasks"

    TaskID = Column(String(36), primary_key=True, default=generate_uuid)
    ReferredUserID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    TransactionID = Column(
        String(36), ForeignKey("Transactions.TransactionID", ondelete="SET NULL"), nullable=True
    )
    Status = Column(
        String(10),
        CheckConstraint("Status IN ('pending', 'completed', 'skipped', 'failed')"),
        nullable=False,
        default="pending",
    )
    Attempts = Column(Integer, nullable=False, default=0)
    LastError = Column(Text, nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
