"""
SQLAlchemy database models for persistent key storage.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ApiKeyRecord(Base):
    """Provider credential with daily usage accounting."""
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(50), nullable=False, index=True)
    secret = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    daily_usage = Column(Integer, default=0, nullable=False)
    last_reset = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Selection filters on provider + active flag
    __table_args__ = (
        Index('idx_api_keys_provider_active', 'provider', 'is_active'),
    )
