"""
Async Fan Profile Model
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String

from app.db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class FanProfile(Base):
    """Every authenticated account; creators additionally own a `creators` row."""

    __tablename__ = "fan_profiles"

    id = Column(String(36), primary_key=True, default=new_uuid)
    descope_user_id = Column(String, unique=True, index=True, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)

    # Platform-level Stripe customer, reused across subscription checkouts
    stripe_customer_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
