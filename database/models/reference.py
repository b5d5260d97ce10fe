from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from database.models.base import Base


class Platform(Base):
    __tablename__ = 'platforms'

    id = Column(String(36), primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    logo_url = Column(String(512))
    website = Column(String(512))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Chain(Base):
    __tablename__ = 'chains'

    id = Column(String(36), primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    color = Column(String(16), nullable=False, default="#3B82F6")
    icon_url = Column(String(512))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
