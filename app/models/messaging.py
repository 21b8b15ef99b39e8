"""
Async Pay-per-message Models
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from app.db import Base
from app.models.user import new_uuid


class PpmThread(Base):
    __tablename__ = "ppm_threads"

    id = Column(String(36), primary_key=True, default=new_uuid)
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False)
    fan_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False, index=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("creator_id", "fan_id", name="uq_ppm_threads_creator_fan"),
    )


class PpmMessage(Base):
    """Append-only; rows are never updated or deleted."""

    __tablename__ = "ppm_messages"

    id = Column(String(36), primary_key=True, default=new_uuid)
    thread_id = Column(String(36), ForeignKey("ppm_threads.id"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False)
    is_creator = Column(Boolean, default=False, nullable=False)
    text = Column(Text, nullable=True)
    is_priority = Column(Boolean, default=False, nullable=False)
    tip_cents = Column(Integer, nullable=True)
    gift_emoji = Column(String, nullable=True)
    gift_coin_cost = Column(Integer, nullable=True)
    coin_cost = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Gift(Base):
    __tablename__ = "gifts"

    id = Column(String(36), primary_key=True, default=new_uuid)
    emoji = Column(String, nullable=False)
    name = Column(String, nullable=True)
    coin_cost = Column(Integer, nullable=False)
