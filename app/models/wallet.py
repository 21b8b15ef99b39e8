"""
Async Wallet Models
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from app.db import Base


class Wallet(Base):
    __tablename__ = "wallets"

    user_id = Column(String(36), ForeignKey("fan_profiles.id"), primary_key=True)
    coin_balance = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="ck_wallets_coin_balance_non_negative"),
    )


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("fan_profiles.id"), nullable=False, index=True)
    amount_coins = Column(Integer, nullable=False)  # signed: debits are negative
    kind = Column(
        String, nullable=False
    )  # message, priority_message, tip, gift, coin_purchase, refund, adjustment
    external_ref_type = Column(String, nullable=True)
    external_ref_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "external_ref_type",
            "external_ref_id",
            "kind",
            name="uq_wallet_transactions_external_ref",
        ),
    )


class StripeWebhookEvent(Base):
    __tablename__ = "stripe_webhook_events"

    event_id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    livemode = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
