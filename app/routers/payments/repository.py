"""Payments/Wallet/Checkout repository layer."""

from sqlalchemy import desc, select, update
from sqlalchemy.orm import selectinload


async def list_recent_wallet_transactions(db, *, user_id: str, limit: int = 10):
    from app.models.wallet import WalletTransaction

    stmt = (
        select(WalletTransaction)
        .where(WalletTransaction.user_id == user_id)
        .order_by(desc(WalletTransaction.created_at))
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_creator_by_id(db, *, creator_id: str):
    from app.models.creator import Creator

    stmt = select(Creator).where(Creator.id == creator_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_creator_by_user_id(db, *, user_id: str):
    from app.models.creator import Creator

    stmt = select(Creator).where(Creator.user_id == user_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_creator_by_connect_id(db, *, connect_id: str):
    from app.models.creator import Creator

    stmt = select(Creator).where(Creator.stripe_connect_id == connect_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_post_with_creator(db, *, post_id: str):
    from app.models.creator import Post

    stmt = select(Post).options(selectinload(Post.creator)).where(Post.id == post_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_package_with_creator(db, *, package_id: str):
    from app.models.creator import ContentPackage

    stmt = (
        select(ContentPackage)
        .options(selectinload(ContentPackage.creator))
        .where(ContentPackage.id == package_id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def save_fan_customer_id(db, *, fan_id: str, customer_id: str):
    from app.models.user import FanProfile

    stmt = (
        update(FanProfile)
        .where(FanProfile.id == fan_id)
        .values(stripe_customer_id=customer_id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)


async def get_webhook_event(db, *, event_id: str):
    from app.models.wallet import StripeWebhookEvent

    stmt = select(StripeWebhookEvent).where(StripeWebhookEvent.event_id == event_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def record_webhook_event(db, *, event_id: str, event_type: str, livemode: bool):
    from datetime import datetime

    from app.models.wallet import StripeWebhookEvent

    db.add(
        StripeWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            livemode=bool(livemode),
            processed_at=datetime.utcnow(),
        )
    )


async def get_subscription(db, *, fan_id: str, creator_id: str):
    from app.models.creator import Subscription

    stmt = select(Subscription).where(
        Subscription.fan_id == fan_id, Subscription.creator_id == creator_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_subscription_by_stripe_id(db, *, stripe_subscription_id: str):
    from app.models.creator import Subscription

    stmt = select(Subscription).where(
        Subscription.stripe_subscription_id == stripe_subscription_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def adjust_subscriber_count(db, *, creator_id: str, delta: int):
    """Shift `creators.subscribers` by delta in SQL; never drops below zero."""
    from sqlalchemy import case

    from app.models.creator import Creator

    new_count = Creator.subscribers + delta
    stmt = (
        update(Creator)
        .where(Creator.id == creator_id)
        .values(subscribers=case((new_count < 0, 0), else_=new_count))
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)


async def get_post_unlock_by_session(db, *, session_id: str):
    from app.models.creator import PostUnlock

    stmt = select(PostUnlock).where(PostUnlock.stripe_checkout_session_id == session_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_package_purchase_by_session(db, *, session_id: str):
    from app.models.creator import PackagePurchase

    stmt = select(PackagePurchase).where(
        PackagePurchase.stripe_checkout_session_id == session_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
