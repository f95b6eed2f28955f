from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
    DateTime,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from spebit.core.database import Base
import uuid


def generate_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "Users"

    UserID = Column(String(36), primary_key=True, default=generate_uuid)
    Email = Column(String(255), unique=True, nullable=False, index=True)
    Password = Column(String(255), nullable=False)
    FullName = Column(String(100), nullable=True)
    MobileNumber = Column(String(20), nullable=True)
    CountryCode = Column(String(8), nullable=True)
    IsBlocked = Column(Boolean, nullable=False, default=False)
    ReferralCount = Column(Integer, nullable=False, default=0)
    CreatedAt = Column(DateTime, server_default=func.now())
    LastLogin = Column(DateTime, nullable=True)


class UserRole(Base):
    __tablename__ = "UserRoles"
    __table_args__ = (UniqueConstraint("UserID", "Role", name="uq_user_role"),)

    UserRoleID = Column(String(36), primary_key=True, default=generate_uuid)
    UserID = Column(
        String(36), ForeignKey("Users.UserID", ondelete="CASCADE"), nullable=False, index=True
    )
    Role = Column(
        String(10), CheckConstraint("Role IN ('admin', 'user')"), nullable=False, default="user"
    )
    CreatedAt = Column(DateTime, server_default=func.now())
