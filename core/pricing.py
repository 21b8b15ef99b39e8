"""Pricing rules for the coin economy.

Pure lookups, no I/O. All money amounts are integer cents; coin amounts are
integer coins (1 coin ~ $0.10).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Union

from core.errors import InvalidRequest, NotFound

STANDARD_MESSAGE_COST = 10
PRIORITY_MESSAGE_COST = 20
CENTS_PER_COIN = 10

PLATFORM_FEE_PERCENT = 10

DEFAULT_SUBSCRIPTION_PRICE = Decimal("5.00")


@dataclass(frozen=True)
class CoinPackage:
    package_type: str
    coins: int
    price_cents: int

    @property
    def price_usd(self) -> float:
        return self.price_cents / 100.0


COIN_PACKAGES: Dict[str, CoinPackage] = {
    "small": CoinPackage(package_type="small", coins=100, price_cents=999),
    "medium": CoinPackage(package_type="medium", coins=500, price_cents=3999),
    "large": CoinPackage(package_type="large", coins=1000, price_cents=6999),
}


def message_cost(is_priority: bool) -> int:
    return PRIORITY_MESSAGE_COST if is_priority else STANDARD_MESSAGE_COST


def tip_cost(tip_cents: int) -> int:
    """Coins charged for a tip, rounded up so fractional coins are never lost."""
    if tip_cents is None or int(tip_cents) <= 0:
        raise InvalidRequest("Tip amount must be greater than 0")
    return -(-int(tip_cents) // CENTS_PER_COIN)


def gift_cost(coin_cost: int) -> int:
    if coin_cost is None or int(coin_cost) <= 0:
        raise InvalidRequest("Gift coin cost must be greater than 0")
    return int(coin_cost)


def coin_package(package_type: Optional[str]) -> CoinPackage:
    package = COIN_PACKAGES.get(package_type or "")
    if package is None:
        raise NotFound(f"Unknown coin package: {package_type}")
    return package


def application_fee(amount_cents: int) -> int:
    """Platform cut of a one-time creator payment: floor(amount * 10%)."""
    if amount_cents < 0:
        raise InvalidRequest("Amount cannot be negative")
    return (int(amount_cents) * PLATFORM_FEE_PERCENT) // 100


def creator_net(amount_cents: int) -> int:
    return int(amount_cents) - application_fee(amount_cents)


def subscription_price_cents(subscription_price: Union[Decimal, float, str, None]) -> int:
    """Monthly price in cents; unset prices fall back to DEFAULT_SUBSCRIPTION_PRICE."""
    if subscription_price is None or subscription_price == "":
        price = DEFAULT_SUBSCRIPTION_PRICE
    else:
        price = Decimal(str(subscription_price))
    if price <= 0:
        price = DEFAULT_SUBSCRIPTION_PRICE
    return int((price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def tip_label(tip_cents: int) -> str:
    return f"Sent a ${int(tip_cents) / 100:.2f} tip"


def gift_label(gift_emoji: str) -> str:
    return f"Sent {gift_emoji}"
