from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey
from database.models.base import Base


class PoolOutlook(Base):
    __tablename__ = 'pool_outlooks'

    id = Column(Integer, primary_key=True, autoincrement=True)
    pool_id = Column(String(36), ForeignKey('pools.id', ondelete="CASCADE"), nullable=False, index=True)
    outlook = Column(Text, nullable=False)
    sentiment = Column(String(16), nullable=False)
    confidence = Column(Integer, nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
