"""Payments/Wallet/Checkout service layer."""

import logging
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import config
from app.services import stripe_service
from app.services.wallet_service import SqlWalletStore
from core.errors import (
    CoinEconomyError,
    GatewayError,
    InvalidRequest,
    NotFound,
    PayoutNotConfigured,
    StorageError,
    Unauthenticated,
)
from core.pricing import (
    COIN_PACKAGES,
    PLATFORM_FEE_PERCENT,
    application_fee,
    coin_package,
    subscription_price_cents,
)

from . import repository as payments_repository
from .schemas import (
    CheckoutSessionResponse,
    CoinPackageResponse,
    CoinPackagesResponse,
    OnboardingResponse,
    PaymentConfigResponse,
    ProductPriceResponse,
    WalletBalanceResponse,
    WalletTransactionResponse,
)

logger = logging.getLogger(__name__)


class CheckoutStage(str, Enum):
    IDLE = "IDLE"
    AUTHENTICATING = "AUTHENTICATING"
    RESOLVING_PAYEE = "RESOLVING_PAYEE"
    ENSURING_CUSTOMER = "ENSURING_CUSTOMER"
    BUILDING_SESSION = "BUILDING_SESSION"
    REDIRECTING = "REDIRECTING"


class CheckoutAttempt:
    """Tracks how far one checkout request got, for failure logging."""

    def __init__(self, kind: str):
        self.kind = kind
        self.stage = CheckoutStage.IDLE

    def advance(self, stage: CheckoutStage) -> None:
        self.stage = stage


@contextmanager
def _checkout_attempt(kind: str):
    attempt = CheckoutAttempt(kind)
    try:
        yield attempt
    except CoinEconomyError as exc:
        exc.stage = attempt.stage.value
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"CHECKOUT_FAILED | stage={attempt.stage.value} | kind={kind} | error={exc.code} | detail={exc.message}"
        )
        raise
    except SQLAlchemyError as exc:
        logger.error(f"CHECKOUT_FAILED | stage={attempt.stage.value} | kind={kind} | error=storage | detail={exc}")
        raise StorageError(stage=attempt.stage.value) from exc


def _require_user(attempt: CheckoutAttempt, user):
    attempt.advance(CheckoutStage.AUTHENTICATING)
    if user is None:
        raise Unauthenticated()
    return user


def _require_payee(creator) -> str:
    if not creator.stripe_connect_id:
        raise PayoutNotConfigured()
    return creator.stripe_connect_id


def _creator_url(creator) -> str:
    return f"{config.APP_URL}/creator/{creator.clean_handle}"


async def _ensure_platform_customer(db, *, user) -> str:
    customer_id = await stripe_service.get_or_create_platform_customer(
        email=user.email,
        fan_id=user.id,
        cached_customer_id=user.stripe_customer_id,
    )
    if customer_id != user.stripe_customer_id:
        await payments_repository.save_fan_customer_id(db, fan_id=user.id, customer_id=customer_id)
        await db.commit()
        user.stripe_customer_id = customer_id
    return customer_id


def _redirect(attempt: CheckoutAttempt, session, *, user) -> CheckoutSessionResponse:
    attempt.advance(CheckoutStage.REDIRECTING)
    logger.info(f"CHECKOUT_CREATED | kind={attempt.kind} | session={session.id} | fan={user.id}")
    return CheckoutSessionResponse(url=session.url, session_id=session.id)


# --- Wallet ---


async def get_wallet_info(db, wallet, *, user, include_transactions: bool) -> WalletBalanceResponse:
    user_id = user.id
    try:
        coin_balance = await wallet.get_balance(user_id)
        await db.commit()

        transactions = None
        if include_transactions:
            transactions = await payments_repository.list_recent_wallet_transactions(
                db, user_id=user_id, limit=10
            )
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Failed to read wallet for user {user_id}: {exc}")
        raise StorageError() from exc

    recent_transactions = None
    if transactions is not None:
        recent_transactions = [
            WalletTransactionResponse(
                id=t.id,
                amount_coins=t.amount_coins,
                kind=t.kind,
                created_at=t.created_at.isoformat() if t.created_at else None,
            )
            for t in transactions
        ]

    return WalletBalanceResponse(coin_balance=coin_balance, recent_transactions=recent_transactions)


def list_coin_packages() -> CoinPackagesResponse:
    return CoinPackagesResponse(
        packages=[
            CoinPackageResponse(
                package_type=p.package_type,
                coins=p.coins,
                price_cents=p.price_cents,
                price_usd=p.price_usd,
            )
            for p in COIN_PACKAGES.values()
        ]
    )


def get_payment_config() -> PaymentConfigResponse:
    publishable_key = stripe_service.get_publishable_key()
    if not publishable_key:
        raise GatewayError("Stripe publishable key not configured")
    return PaymentConfigResponse(publishable_key=publishable_key, currency=config.PAYMENTS_DEFAULT_CURRENCY)


# --- Checkout builders ---


async def create_subscription_checkout(db, *, user, creator_id: str) -> CheckoutSessionResponse:
    with _checkout_attempt("subscription") as attempt:
        user = _require_user(attempt, user)

        attempt.advance(CheckoutStage.RESOLVING_PAYEE)
        creator = await payments_repository.get_creator_by_id(db, creator_id=creator_id)
        if not creator:
            raise NotFound("Creator not found")
        connect_id = _require_payee(creator)

        attempt.advance(CheckoutStage.ENSURING_CUSTOMER)
        customer_id = await _ensure_platform_customer(db, user=user)

        attempt.advance(CheckoutStage.BUILDING_SESSION)
        metadata = {
            "creatorId": creator.id,
            "fanId": user.id,
            "platform": config.PLATFORM_NAME,
            "type": "subscription",
        }
        session = await stripe_service.create_checkout_session(
            {
                "mode": "subscription",
                "customer": customer_id,
                "line_items": [
                    {
                        "price_data": {
                            "currency": config.PAYMENTS_DEFAULT_CURRENCY,
                            "unit_amount": subscription_price_cents(creator.subscription_price),
                            "recurring": {"interval": "month"},
                            "product_data": {
                                "name": f"{creator.public_name}'s Premium Content",
                                "description": f"Monthly subscription to unlock {creator.public_name}'s Snapchat",
                            },
                        },
                        "quantity": 1,
                    }
                ],
                "success_url": f"{_creator_url(creator)}?unlocked=true",
                "cancel_url": _creator_url(creator),
                # Destination charge: platform keeps the fee, the rest goes to the creator
                "subscription_data": {
                    "application_fee_percent": PLATFORM_FEE_PERCENT,
                    "transfer_data": {"destination": connect_id},
                    "metadata": metadata,
                },
                "metadata": metadata,
            }
        )
        return _redirect(attempt, session, user=user)


async def _create_direct_charge_checkout(
    *,
    attempt: CheckoutAttempt,
    user,
    creator,
    price_cents: int,
    product_name: str,
    product_description: str,
    success_query: str,
    metadata: dict,
) -> CheckoutSessionResponse:
    connect_id = _require_payee(creator)
    if not price_cents or price_cents <= 0:
        raise InvalidRequest("This item has no price")

    attempt.advance(CheckoutStage.ENSURING_CUSTOMER)
    customer_id = await stripe_service.get_or_create_connected_customer(
        email=user.email, fan_id=user.id, connect_id=connect_id
    )

    attempt.advance(CheckoutStage.BUILDING_SESSION)
    session = await stripe_service.create_checkout_session(
        {
            "mode": "payment",
            "customer": customer_id,
            "line_items": [
                {
                    "price_data": {
                        "currency": config.PAYMENTS_DEFAULT_CURRENCY,
                        "product_data": {
                            "name": product_name,
                            "description": product_description,
                        },
                        "unit_amount": price_cents,
                    },
                    "quantity": 1,
                }
            ],
            "payment_intent_data": {
                "application_fee_amount": application_fee(price_cents),
                "metadata": metadata,
            },
            "success_url": f"{_creator_url(creator)}?unlocked=true&{success_query}",
            "cancel_url": _creator_url(creator),
            "metadata": metadata,
        },
        stripe_account=connect_id,
    )
    return _redirect(attempt, session, user=user)


async def create_post_unlock_checkout(db, *, user, post_id: str) -> CheckoutSessionResponse:
    with _checkout_attempt("post_unlock") as attempt:
        user = _require_user(attempt, user)

        attempt.advance(CheckoutStage.RESOLVING_PAYEE)
        post = await payments_repository.get_post_with_creator(db, post_id=post_id)
        if not post or not post.creator:
            raise NotFound("Post not found")

        creator = post.creator
        return await _create_direct_charge_checkout(
            attempt=attempt,
            user=user,
            creator=creator,
            price_cents=post.unlock_price_cents,
            product_name="Unlock Post",
            product_description=post.caption or "Exclusive content",
            success_query=f"postId={post.id}",
            metadata={
                "postId": post.id,
                "fanId": user.id,
                "creatorId": creator.id,
                "type": "post_unlock",
            },
        )


async def create_package_checkout(db, *, user, package_id: str) -> CheckoutSessionResponse:
    with _checkout_attempt("package_purchase") as attempt:
        user = _require_user(attempt, user)

        attempt.advance(CheckoutStage.RESOLVING_PAYEE)
        package = await payments_repository.get_package_with_creator(db, package_id=package_id)
        if not package or not package.creator:
            raise NotFound("Package not found")

        creator = package.creator
        return await _create_direct_charge_checkout(
            attempt=attempt,
            user=user,
            creator=creator,
            price_cents=package.price_cents,
            product_name=package.title,
            product_description=package.description or package.includes_summary or "Exclusive content package",
            success_query=f"packageId={package.id}",
            metadata={
                "packageId": package.id,
                "fanId": user.id,
                "creatorId": creator.id,
                "type": "package_purchase",
            },
        )


async def create_coin_checkout(db, *, user, package_type: str) -> CheckoutSessionResponse:
    with _checkout_attempt("coin_purchase") as attempt:
        user = _require_user(attempt, user)

        # Coins are sold by the platform itself; there is no payee to resolve
        attempt.advance(CheckoutStage.RESOLVING_PAYEE)
        package = coin_package(package_type)

        attempt.advance(CheckoutStage.ENSURING_CUSTOMER)
        customer_id = await _ensure_platform_customer(db, user=user)

        attempt.advance(CheckoutStage.BUILDING_SESSION)
        session = await stripe_service.create_checkout_session(
            {
                "mode": "payment",
                "customer": customer_id,
                "line_items": [
                    {
                        "price_data": {
                            "currency": config.PAYMENTS_DEFAULT_CURRENCY,
                            "product_data": {
                                "name": f"{package.coins} Coins",
                                "description": "Coins for messages, tips, and gifts",
                            },
                            "unit_amount": package.price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                "success_url": f"{config.APP_URL}?coins=success",
                "cancel_url": f"{config.APP_URL}?coins=cancelled",
                "metadata": {
                    "userId": user.id,
                    "packageType": package.package_type,
                    "coins": str(package.coins),
                    "type": "coin_purchase",
                },
            }
        )
        return _redirect(attempt, session, user=user)


# --- Creator Stripe Connect ---


async def _get_own_creator(db, *, user):
    if user is None:
        raise Unauthenticated()
    user_id = user.id
    try:
        creator = await payments_repository.get_creator_by_user_id(db, user_id=user_id)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Failed to load creator profile for user {user_id}: {exc}")
        raise StorageError() from exc
    if not creator:
        raise NotFound("Creator profile not found")
    return creator


async def _save_creator(db, *, creator_id: str, change: str):
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Failed to save {change} for creator {creator_id}: {exc}")
        raise StorageError() from exc


async def create_creator_onboarding(db, *, user, connected: bool = False) -> OnboardingResponse:
    """
    Start or resume Stripe onboarding for the caller's creator profile.

    Creates the connected account on first call and stores its id. When the
    creator comes back from Stripe (`connected=True`) the account is checked
    and the creator is marked connected once details are submitted.
    """
    creator = await _get_own_creator(db, user=user)
    creator_id = creator.id

    account_id = creator.stripe_connect_id
    if not account_id:
        account_id = await stripe_service.create_connect_account(email=user.email, creator_id=creator_id)
        creator.stripe_connect_id = account_id
        await _save_creator(db, creator_id=creator_id, change=f"connect account {account_id}")

    url = await stripe_service.create_account_link(
        account_id,
        refresh_url=f"{config.APP_URL}/dashboard/monetization",
        return_url=f"{config.APP_URL}/dashboard/monetization?connected=true",
    )

    if connected and not creator.is_stripe_connected:
        account = await stripe_service.retrieve_account(account_id)
        if getattr(account, "details_submitted", False):
            creator.is_stripe_connected = True
            await _save_creator(db, creator_id=creator_id, change="onboarding status")
            logger.info(f"Creator {creator_id} completed Stripe onboarding ({account_id})")

    return OnboardingResponse(
        url=url,
        account_id=account_id,
        is_stripe_connected=bool(creator.is_stripe_connected),
    )


async def create_creator_product_price(db, *, user, price: Optional[Decimal]) -> ProductPriceResponse:
    creator = await _get_own_creator(db, user=user)
    creator_id = creator.id

    if price is None or Decimal(str(price)) <= 0:
        raise InvalidRequest("Price must be greater than 0")
    price = Decimal(str(price)).quantize(Decimal("0.01"))

    if not creator.stripe_connect_id:
        raise PayoutNotConfigured("Please connect your Stripe account first")

    product_id = creator.stripe_product_id
    if not product_id:
        product_id = await stripe_service.create_product(
            name=f"{creator.public_name}'s Premium Content",
            description=f"Monthly subscription to access {creator.public_name}'s exclusive Snapchat content",
            creator_id=creator_id,
            connect_id=creator.stripe_connect_id,
        )
        creator.stripe_product_id = product_id
        await _save_creator(db, creator_id=creator_id, change=f"product {product_id}")

    unit_amount = subscription_price_cents(price)
    price_id = await stripe_service.create_monthly_price(
        product_id=product_id,
        unit_amount=unit_amount,
        creator_id=creator_id,
        connect_id=creator.stripe_connect_id,
    )

    creator.subscription_price = price
    creator.stripe_price_id = price_id
    await _save_creator(db, creator_id=creator_id, change=f"price {price_id}")
    logger.info(f"Creator {creator_id} subscription price set to {unit_amount}c ({price_id})")

    return ProductPriceResponse(
        product_id=product_id,
        price_id=price_id,
        subscription_price=float(price),
        unit_amount=unit_amount,
    )


# --- Stripe webhook ---


async def _handle_checkout_completed(db, session) -> str:
    metadata = session.get("metadata") or {}
    checkout_type = metadata.get("type")
    session_id = session.get("id")

    if checkout_type == "coin_purchase":
        user_id = metadata.get("userId")
        try:
            coins = int(metadata.get("coins") or 0)
        except (TypeError, ValueError):
            coins = 0
        if not user_id or coins <= 0:
            logger.warning(f"WEBHOOK_SKIPPED | session={session_id} | reason=invalid_coin_metadata")
            return "skipped_invalid_metadata"

        new_balance = await SqlWalletStore(db).credit(
            user_id,
            coins,
            kind="coin_purchase",
            external_ref_type="stripe_checkout_session",
            external_ref_id=session_id,
        )
        logger.info(f"WEBHOOK_COINS_CREDITED | session={session_id} | user={user_id} | coins={coins} | balance={new_balance}")
        return "coins_credited"

    if checkout_type == "post_unlock":
        from app.models.creator import PostUnlock

        if not metadata.get("fanId") or not metadata.get("postId"):
            logger.warning(f"WEBHOOK_SKIPPED | session={session_id} | reason=invalid_unlock_metadata")
            return "skipped_invalid_metadata"
        if not await payments_repository.get_post_unlock_by_session(db, session_id=session_id):
            db.add(PostUnlock(fan_id=metadata.get("fanId"), post_id=metadata.get("postId"), stripe_checkout_session_id=session_id))
        return "post_unlocked"

    if checkout_type == "package_purchase":
        from app.models.creator import PackagePurchase

        if not metadata.get("fanId") or not metadata.get("packageId"):
            logger.warning(f"WEBHOOK_SKIPPED | session={session_id} | reason=invalid_package_metadata")
            return "skipped_invalid_metadata"
        if not await payments_repository.get_package_purchase_by_session(db, session_id=session_id):
            db.add(
                PackagePurchase(
                    fan_id=metadata.get("fanId"),
                    package_id=metadata.get("packageId"),
                    stripe_checkout_session_id=session_id,
                )
            )
        return "package_purchased"

    creator_id = metadata.get("creatorId")
    fan_id = metadata.get("fanId")
    if checkout_type in (None, "subscription") and creator_id and fan_id:
        from app.models.creator import Subscription

        subscription = await payments_repository.get_subscription(db, fan_id=fan_id, creator_id=creator_id)
        was_active = bool(subscription and subscription.is_active)
        if subscription is None:
            subscription = Subscription(fan_id=fan_id, creator_id=creator_id)
            db.add(subscription)
        subscription.stripe_customer_id = session.get("customer")
        subscription.stripe_subscription_id = session.get("subscription")
        subscription.is_active = True

        if not was_active:
            await payments_repository.adjust_subscriber_count(db, creator_id=creator_id, delta=1)
        return "subscription_activated"

    return "ignored"


async def _handle_subscription_changed(db, subscription_obj) -> str:
    metadata = subscription_obj.get("metadata") or {}
    creator_id = metadata.get("creatorId")
    fan_id = metadata.get("fanId")

    if creator_id and fan_id:
        subscription = await payments_repository.get_subscription(db, fan_id=fan_id, creator_id=creator_id)
    else:
        subscription = await payments_repository.get_subscription_by_stripe_id(
            db, stripe_subscription_id=subscription_obj.get("id")
        )
    if subscription is None:
        return "subscription_not_found"

    is_active = subscription_obj.get("status") == "active"
    was_active = bool(subscription.is_active)
    subscription.is_active = is_active

    if was_active and not is_active:
        await payments_repository.adjust_subscriber_count(db, creator_id=subscription.creator_id, delta=-1)
    elif is_active and not was_active:
        await payments_repository.adjust_subscriber_count(db, creator_id=subscription.creator_id, delta=1)
    return "subscription_updated"


async def _handle_account_updated(db, account) -> str:
    creator = await payments_repository.get_creator_by_connect_id(db, connect_id=account.get("id"))
    if not creator:
        return "creator_not_found"
    creator.is_stripe_connected = bool(account.get("details_submitted", False))
    return "account_updated"


async def _already_processed(db, *, event_id: str) -> bool:
    try:
        return await payments_repository.get_webhook_event(db, event_id=event_id) is not None
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"WEBHOOK_FAILED | event={event_id} | error={exc}")
        raise StorageError() from exc


async def process_stripe_webhook(db, *, payload: bytes, stripe_signature: Optional[str]):
    event = stripe_service.verify_webhook_signature(payload, stripe_signature)

    event_type = event["type"]
    event_id = event["id"]
    livemode = event.get("livemode", False)
    obj = event["data"]["object"]

    if await _already_processed(db, event_id=event_id):
        logger.info(f"WEBHOOK_DUPLICATE | event={event_id} | type={event_type}")
        return {"received": True, "status": "already_processed", "event_id": event_id}

    try:
        if event_type == "checkout.session.completed":
            outcome = await _handle_checkout_completed(db, obj)
        elif event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
            outcome = await _handle_subscription_changed(db, obj)
        elif event_type == "account.updated":
            outcome = await _handle_account_updated(db, obj)
        else:
            outcome = "unhandled"

        payments_repository.record_webhook_event(
            db, event_id=event_id, event_type=event_type, livemode=livemode
        )
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        # Only a concurrent delivery of the same event counts as processed
        if await _already_processed(db, event_id=event_id):
            logger.info(f"WEBHOOK_DUPLICATE | event={event_id} | type={event_type}")
            return {"received": True, "status": "already_processed", "event_id": event_id}
        logger.error(f"WEBHOOK_FAILED | event={event_id} | type={event_type} | error={exc}")
        raise StorageError() from exc
    except CoinEconomyError:
        await db.rollback()
        logger.error(f"WEBHOOK_FAILED | event={event_id} | type={event_type}")
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"WEBHOOK_FAILED | event={event_id} | type={event_type} | error={exc}")
        raise StorageError() from exc

    logger.info(f"WEBHOOK_PROCESSED | event={event_id} | type={event_type} | outcome={outcome}")
    return {"received": True, "status": outcome, "event_id": event_id, "event_type": event_type}
