from sqlalchemy import Column, String, Integer, DECIMAL, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database.models.base import Base


class HolderRecord(Base):
    __tablename__ = 'pool_holders'

    id = Column(Integer, primary_key=True, autoincrement=True)
    pool_id = Column(String(36), ForeignKey('pools.id', ondelete="CASCADE"), nullable=False, index=True)
    address = Column(String(64), nullable=False)
    # Raw integer balance in the token's smallest unit, stored as text to keep uint256 precision
    balance = Column(String(80), nullable=False)
    balance_usd = Column(DECIMAL(20, 2))
    percentage = Column(DECIMAL(7, 2))
    rank = Column(Integer, nullable=False)
    tx_count = Column(Integer)
    first_seen = Column(DateTime(timezone=True))
    last_updated = Column(DateTime(timezone=True), server_default=func.now())

    pool = relationship("Pool", back_populates="holders")


class HolderHistoryPoint(Base):
    __tablename__ = 'holder_history'
    __table_args__ = (
        Index('ix_holder_history_token_timestamp', 'token_address', 'timestamp'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_address = Column(String(64), nullable=False)
    holders_count = Column(Integer, nullable=False)
    price_usd = Column(DECIMAL(20, 8))
    market_cap_usd = Column(DECIMAL(24, 2))
    timestamp = Column(DateTime(timezone=True), nullable=False)
