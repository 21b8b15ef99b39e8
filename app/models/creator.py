"""
Async Creator Models - creators, priced content and fan entitlements
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.user import new_uuid


class Creator(Base):
    __tablename__ = "creators"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("fan_profiles.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    handle = Column(String, unique=True, index=True, nullable=False)

    # Stripe Connect payee; checkout is refused while this is null
    stripe_connect_id = Column(String(255), nullable=True)
    is_stripe_connected = Column(Boolean, default=False, nullable=False)
    stripe_product_id = Column(String, nullable=True)
    stripe_price_id = Column(String, nullable=True)
    subscription_price = Column(Numeric(10, 2), nullable=True)  # dollars
    subscribers = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    posts = relationship("Post", back_populates="creator")
    content_packages = relationship("ContentPackage", back_populates="creator")

    @property
    def public_name(self) -> str:
        return self.display_name or self.name

    @property
    def clean_handle(self) -> str:
        return (self.handle or "").replace("@", "")


class Post(Base):
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=new_uuid)
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False, index=True)
    caption = Column(Text, nullable=True)
    unlock_price_cents = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    creator = relationship("Creator", back_populates="posts")


class ContentPackage(Base):
    __tablename__ = "content_packages"

    id = Column(String(36), primary_key=True, default=new_uuid)
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    includes_summary = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    creator = relationship("Creator", back_populates="content_packages")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    fan_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False)
    creator_id = Column(String(36), ForeignKey("creators.id"), nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("fan_id", "creator_id", name="uq_subscriptions_fan_creator"),
    )


class PostUnlock(Base):
    __tablename__ = "post_unlocks"

    id = Column(String(36), primary_key=True, default=new_uuid)
    fan_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False)
    post_id = Column(String(36), ForeignKey("posts.id"), nullable=False)
    stripe_checkout_session_id = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PackagePurchase(Base):
    __tablename__ = "package_purchases"

    id = Column(String(36), primary_key=True, default=new_uuid)
    fan_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False)
    package_id = Column(String(36), ForeignKey("content_packages.id"), nullable=False)
    stripe_checkout_session_id = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
