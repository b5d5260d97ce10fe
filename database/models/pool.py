from sqlalchemy import Column, String, DECIMAL, DateTime, Boolean, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database.models.base import Base, JSONPayload


class Pool(Base):
    __tablename__ = 'pools'
    __table_args__ = (
        UniqueConstraint('source', 'external_id', name='uq_pools_source_external_id'),
    )

    id = Column(String(36), primary_key=True)
    source = Column(String(64), nullable=False)
    external_id = Column(String(255), nullable=False)
    platform_id = Column(String(36), ForeignKey('platforms.id'), nullable=False)
    chain_id = Column(String(36), ForeignKey('chains.id'), nullable=False)
    token_pair = Column(String(255), nullable=False)
    apy = Column(DECIMAL(10, 4))
    tvl = Column(DECIMAL(20, 2))
    risk_level = Column(String(16), nullable=False, default="medium")
    pool_address = Column(String(255))
    raw_payload = Column(JSONPayload)

    # Admin-owned
    is_visible = Column(Boolean, nullable=False, default=False)
    categories = Column(JSONPayload)
    notes = Column(Text)

    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True))
    last_updated = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    platform = relationship("Platform")
    chain = relationship("Chain")
    holders = relationship("HolderRecord", back_populates="pool", cascade="all, delete-orphan")
