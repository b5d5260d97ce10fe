from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text
from sqlalchemy.sql import func
from database.models.base import Base


class ServiceConfiguration(Base):
    __tablename__ = 'service_configurations'

    service_name = Column(String(128), primary_key=True)
    display_name = Column(String(255), nullable=False)
    description = Column(Text)
    interval_minutes = Column(Integer, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    category = Column(String(64))
    priority = Column(Integer, default=2)

    # Run statistics
    last_run = Column(DateTime(timezone=True))
    last_success_at = Column(DateTime(timezone=True))
    run_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    last_error_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
