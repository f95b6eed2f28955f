from sqlalchemy import Column, String, DateTime, Boolean, DECIMAL
from sqlalchemy.sql import func
from spebit.core.database import Base
from spebit.models.user import generate_uuid


class Cryptocurrency(Base):
    __tablename__ = "Cryptocurrencies"

    CryptoID = Column(String(36), primary_key=True, default=generate_uuid)
    Name = Column(String(100), nullable=False)
    Symbol = Column(String(20), nullable=False, index=True)
    CurrentPrice = Column(DECIMAL(28, 8), nullable=False, default=0)
    LogoURL = Column(String(500), nullable=True)
    IsActive = Column(Boolean, nullable=False, default=True)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())
