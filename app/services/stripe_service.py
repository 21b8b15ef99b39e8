"""
Stripe Service - Checkout sessions, customers and Stripe Connect accounts
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

import stripe

import config
from core.errors import GatewayError, InvalidRequest

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = config.STRIPE_API_KEY
if config.STRIPE_API_VERSION:
    stripe.api_version = config.STRIPE_API_VERSION
stripe.default_http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)
stripe.max_network_retries = 0

if not stripe.api_key:
    logger.warning("STRIPE_API_KEY not set - Stripe operations will fail")

if not config.STRIPE_WEBHOOK_SECRET:
    logger.warning("STRIPE_WEBHOOK_SECRET not set - Webhook verification will fail")

# Thread pool for Stripe API calls (sync SDK wrapped in async)
_executor = ThreadPoolExecutor(max_workers=config.STRIPE_MAX_WORKERS, thread_name_prefix="stripe")


async def _call(fn, *args, **kwargs):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(_executor, lambda: fn(*args, **kwargs))


def _gateway_error(action: str, exc: stripe.StripeError) -> GatewayError:
    message = getattr(exc, "user_message", None) or str(exc) or None
    logger.error(f"Stripe {action} failed: {exc}")
    return GatewayError(message)


def _find_or_create_customer(*, email: str, fan_id: str, **account):
    existing = stripe.Customer.list(email=email, limit=1, **account)
    if existing.data:
        return existing.data[0].id, False

    customer = stripe.Customer.create(
        email=email,
        metadata={"fanId": fan_id, "platform": config.PLATFORM_NAME},
        **account,
    )
    return customer.id, True


async def get_or_create_platform_customer(
    *, email: str, fan_id: str, cached_customer_id: Optional[str] = None
) -> str:
    """
    Find or create the fan's customer on the platform account.

    Args:
        email: Fan email used for lookup and creation
        fan_id: Fan profile id, stored in customer metadata
        cached_customer_id: Customer id already saved on the fan profile

    Returns:
        Stripe customer ID (cus_*)

    Raises:
        GatewayError: If Stripe rejects the request or times out
    """
    if cached_customer_id:
        return cached_customer_id

    try:
        customer_id, created = await _call(_find_or_create_customer, email=email, fan_id=fan_id)
    except stripe.StripeError as e:
        raise _gateway_error("customer lookup", e) from e
    if created:
        logger.info(f"Created Stripe customer {customer_id} for fan {fan_id}")
    return customer_id


async def get_or_create_connected_customer(*, email: str, fan_id: str, connect_id: str) -> str:
    """Find or create the fan's customer on a creator's connected account."""
    try:
        customer_id, created = await _call(
            _find_or_create_customer, email=email, fan_id=fan_id, stripe_account=connect_id
        )
    except stripe.StripeError as e:
        raise _gateway_error("connected customer lookup", e) from e
    if created:
        logger.info(f"Created Stripe customer {customer_id} on {connect_id} for fan {fan_id}")
    return customer_id


async def create_checkout_session(params: Dict[str, Any], *, stripe_account: Optional[str] = None):
    """
    Create a Checkout Session.

    Direct charges pass the creator's account as `stripe_account`; platform
    sessions (subscriptions, coin packages) leave it unset.
    """
    try:
        if stripe_account:
            return await _call(stripe.checkout.Session.create, **params, stripe_account=stripe_account)
        return await _call(stripe.checkout.Session.create, **params)
    except stripe.StripeError as e:
        raise _gateway_error("checkout session", e) from e


async def create_connect_account(*, email: Optional[str], creator_id: str) -> str:
    """
    Create a Stripe Connect account for a creator.

    The creator pays its own Stripe fees and Stripe carries payment losses;
    the creator gets the full Stripe dashboard.

    Returns:
        Stripe Connect account ID (acct_*)
    """
    try:
        account = await _call(
            stripe.Account.create,
            email=email,
            controller={
                "fees": {"payer": "account"},
                "losses": {"payments": "stripe"},
                "stripe_dashboard": {"type": "full"},
            },
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            metadata={"creatorId": creator_id, "platform": config.PLATFORM_NAME},
        )
    except stripe.StripeError as e:
        raise _gateway_error("account creation", e) from e

    logger.info(f"Created Stripe Connect account {account.id} for creator {creator_id}")
    return account.id


async def create_account_link(account_id: str, *, return_url: str, refresh_url: str) -> str:
    """Create an onboarding account link and return its URL."""
    try:
        account_link = await _call(
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
    except stripe.StripeError as e:
        raise _gateway_error("account link", e) from e
    return account_link.url


async def retrieve_account(account_id: str):
    try:
        return await _call(stripe.Account.retrieve, account_id)
    except stripe.StripeError as e:
        raise _gateway_error("account retrieve", e) from e


async def create_product(*, name: str, description: str, creator_id: str, connect_id: str) -> str:
    """Create the subscription product on the creator's connected account."""
    try:
        product = await _call(
            stripe.Product.create,
            name=name,
            description=description,
            metadata={"creatorId": creator_id, "platform": config.PLATFORM_NAME},
            stripe_account=connect_id,
        )
    except stripe.StripeError as e:
        raise _gateway_error("product creation", e) from e
    logger.info(f"Created Stripe product {product.id} on {connect_id}")
    return product.id


async def create_monthly_price(*, product_id: str, unit_amount: int, creator_id: str, connect_id: str) -> str:
    """Prices are immutable, so every price change creates a new one."""
    try:
        price = await _call(
            stripe.Price.create,
            product=product_id,
            unit_amount=unit_amount,
            currency=config.PAYMENTS_DEFAULT_CURRENCY,
            recurring={"interval": "month"},
            metadata={"creatorId": creator_id},
            stripe_account=connect_id,
        )
    except stripe.StripeError as e:
        raise _gateway_error("price creation", e) from e
    logger.info(f"Created Stripe price {price.id} ({unit_amount}c/month) on {connect_id}")
    return price.id


def verify_webhook_signature(payload: bytes, signature: Optional[str]):
    """
    Verify Stripe webhook signature.

    Args:
        payload: Raw request body as bytes
        signature: Stripe-Signature header value

    Returns:
        Verified stripe.Event

    Raises:
        InvalidRequest: If the secret is missing or the payload/signature is invalid
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        raise InvalidRequest("STRIPE_WEBHOOK_SECRET not configured")
    if not signature:
        raise InvalidRequest("Missing stripe-signature header")

    try:
        return stripe.Webhook.construct_event(payload, signature, config.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {str(e)}")
        raise InvalidRequest("Invalid webhook payload") from e
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {str(e)}")
        raise InvalidRequest("Invalid webhook signature") from e


def get_publishable_key() -> str:
    return config.STRIPE_PUBLISHABLE_KEY
