"""Checkout Router - Stripe Checkout sessions for subscriptions, unlocks and coins."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_user
from app.models.user import FanProfile

from .schemas import (
    CheckoutSessionResponse,
    CoinCheckoutRequest,
    PackageCheckoutRequest,
    PaymentConfigResponse,
    PostCheckoutRequest,
    SubscriptionCheckoutRequest,
)
from .service import (
    create_coin_checkout as service_create_coin_checkout,
    create_package_checkout as service_create_package_checkout,
    create_post_unlock_checkout as service_create_post_unlock_checkout,
    create_subscription_checkout as service_create_subscription_checkout,
    get_payment_config as service_get_payment_config,
)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.get("/config", response_model=PaymentConfigResponse)
async def get_payment_config(user: FanProfile = Depends(get_current_user)):
    """
    Publishable key and currency for initializing Stripe.js in the frontend.
    """
    return service_get_payment_config()


@router.post("/subscription", response_model=CheckoutSessionResponse)
async def create_subscription_checkout(
    request: SubscriptionCheckoutRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Start a monthly subscription to a creator.

    The platform keeps a 10% application fee; the rest is transferred to the
    creator's connected account.
    """
    return await service_create_subscription_checkout(db, user=user, creator_id=request.creator_id)


@router.post("/post", response_model=CheckoutSessionResponse)
async def create_post_checkout(
    request: PostCheckoutRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_create_post_unlock_checkout(db, user=user, post_id=request.post_id)


@router.post("/package", response_model=CheckoutSessionResponse)
async def create_package_checkout(
    request: PackageCheckoutRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_create_package_checkout(db, user=user, package_id=request.package_id)


@router.post("/coins", response_model=CheckoutSessionResponse)
async def create_coin_checkout(
    request: CoinCheckoutRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Buy a coin package. Coins are credited when Stripe reports the session
    as completed.
    """
    return await service_create_coin_checkout(db, user=user, package_type=request.package_type)
