"""Payments/Wallet/Checkout schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class WalletTransactionResponse(BaseModel):
    id: int
    amount_coins: int
    kind: str
    created_at: Optional[str] = None


class WalletBalanceResponse(BaseModel):
    coin_balance: int
    recent_transactions: Optional[List[WalletTransactionResponse]] = None


class CoinPackageResponse(BaseModel):
    package_type: str
    coins: int
    price_cents: int
    price_usd: float


class CoinPackagesResponse(BaseModel):
    packages: List[CoinPackageResponse]


class SubscriptionCheckoutRequest(BaseModel):
    creator_id: str = Field(..., min_length=1)


class PostCheckoutRequest(BaseModel):
    post_id: str = Field(..., min_length=1)


class PackageCheckoutRequest(BaseModel):
    package_id: str = Field(..., min_length=1)


class CoinCheckoutRequest(BaseModel):
    package_type: str = Field(..., description="Coin package: small, medium or large")


class CheckoutSessionResponse(BaseModel):
    url: str
    session_id: str


class OnboardingRequest(BaseModel):
    connected: bool = Field(
        False, description="True when returning from Stripe onboarding"
    )


class OnboardingResponse(BaseModel):
    url: str
    account_id: str
    is_stripe_connected: bool


class ProductPriceRequest(BaseModel):
    price: Decimal = Field(..., description="Monthly subscription price in dollars")


class ProductPriceResponse(BaseModel):
    product_id: str
    price_id: str
    subscription_price: float
    unit_amount: int


class PaymentConfigResponse(BaseModel):
    publishable_key: str
    currency: str
