"""Stripe Connect Router - Creator onboarding and subscription pricing."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_user
from app.models.user import FanProfile

from .schemas import (
    OnboardingRequest,
    OnboardingResponse,
    ProductPriceRequest,
    ProductPriceResponse,
)
from .service import (
    create_creator_onboarding as service_create_creator_onboarding,
    create_creator_product_price as service_create_creator_product_price,
)

router = APIRouter(prefix="/stripe/connect", tags=["Stripe Connect"])


@router.post("/onboarding", response_model=OnboardingResponse)
async def create_onboarding_link(
    request: OnboardingRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_create_creator_onboarding(db, user=user, connected=request.connected)


@router.post("/product-price", response_model=ProductPriceResponse)
async def set_product_price(
    request: ProductPriceRequest,
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Set the creator's monthly subscription price. A new Stripe price is
    created each time; the product is created on first use.
    """
    return await service_create_creator_product_price(db, user=user, price=request.price)
