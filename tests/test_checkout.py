"""
Checkout builder and creator onboarding tests with the Stripe gateway stubbed out.
"""

import threading
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import stripe
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

import config
from app.models.creator import Creator
from app.models.user import FanProfile
from app.routers.payments import service as payments_service
from app.services import stripe_service
from app.services.wallet_service import SqlWalletStore
from core.errors import (
    GatewayError,
    InvalidRequest,
    NotFound,
    PayoutNotConfigured,
    StorageError,
    Unauthenticated,
)

STRIPE_TEST_ACCOUNT_ID = "acct_1032D82eZvKYlo2C"
STRIPE_TEST_CUSTOMER_ID = "cus_TestCustomer123"


@pytest.fixture
def gateway(monkeypatch):
    session = SimpleNamespace(id="cs_test_a1", url="https://checkout.stripe.com/c/pay/cs_test_a1")
    mocks = SimpleNamespace(
        session=session,
        platform_customer=AsyncMock(return_value=STRIPE_TEST_CUSTOMER_ID),
        connected_customer=AsyncMock(return_value="cus_Connected456"),
        checkout=AsyncMock(return_value=session),
        connect_account=AsyncMock(return_value="acct_NewCreator789"),
        account_link=AsyncMock(return_value="https://connect.stripe.com/setup/s/abc"),
        retrieve_account=AsyncMock(return_value=SimpleNamespace(details_submitted=True)),
        product=AsyncMock(return_value="prod_Premium1"),
        price=AsyncMock(return_value="price_Monthly1"),
    )
    monkeypatch.setattr(stripe_service, "get_or_create_platform_customer", mocks.platform_customer)
    monkeypatch.setattr(stripe_service, "get_or_create_connected_customer", mocks.connected_customer)
    monkeypatch.setattr(stripe_service, "create_checkout_session", mocks.checkout)
    monkeypatch.setattr(stripe_service, "create_connect_account", mocks.connect_account)
    monkeypatch.setattr(stripe_service, "create_account_link", mocks.account_link)
    monkeypatch.setattr(stripe_service, "retrieve_account", mocks.retrieve_account)
    monkeypatch.setattr(stripe_service, "create_product", mocks.product)
    monkeypatch.setattr(stripe_service, "create_monthly_price", mocks.price)
    return mocks


def _db_down():
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


def _session_params(mock):
    args, kwargs = mock.call_args
    return args[0], kwargs


class TestDirectChargeCheckout:
    @pytest.mark.asyncio
    async def test_post_unlock_charges_on_creator_account(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator()
        post = await seed.post(creator, unlock_price_cents=499)

        response = await payments_service.create_post_unlock_checkout(db, user=fan, post_id=post.id)

        assert response.url == gateway.session.url
        assert response.session_id == "cs_test_a1"
        gateway.connected_customer.assert_awaited_once_with(
            email=fan.email, fan_id=fan.id, connect_id=STRIPE_TEST_ACCOUNT_ID
        )
        params, kwargs = _session_params(gateway.checkout)
        assert kwargs == {"stripe_account": STRIPE_TEST_ACCOUNT_ID}
        assert params["mode"] == "payment"
        assert params["customer"] == "cus_Connected456"
        assert params["line_items"][0]["price_data"]["unit_amount"] == 499
        assert params["payment_intent_data"]["application_fee_amount"] == 49
        assert params["metadata"] == {
            "postId": post.id,
            "fanId": fan.id,
            "creatorId": creator.id,
            "type": "post_unlock",
        }
        assert params["success_url"] == f"{config.APP_URL}/creator/jenny?unlocked=true&postId={post.id}"
        assert params["cancel_url"] == f"{config.APP_URL}/creator/jenny"

    @pytest.mark.asyncio
    async def test_package_checkout_uses_package_price(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator()
        package = await seed.package(creator, price_cents=1999)

        await payments_service.create_package_checkout(db, user=fan, package_id=package.id)

        params, kwargs = _session_params(gateway.checkout)
        assert kwargs["stripe_account"] == STRIPE_TEST_ACCOUNT_ID
        assert params["line_items"][0]["price_data"]["product_data"]["name"] == "Summer bundle"
        assert params["line_items"][0]["price_data"]["unit_amount"] == 1999
        assert params["payment_intent_data"]["application_fee_amount"] == 199
        assert params["metadata"]["type"] == "package_purchase"
        assert params["success_url"].endswith(f"packageId={package.id}")

    @pytest.mark.asyncio
    async def test_creator_without_payout_account_is_refused(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator(connect_id=None)
        post = await seed.post(creator)

        with pytest.raises(PayoutNotConfigured) as exc_info:
            await payments_service.create_post_unlock_checkout(db, user=fan, post_id=post.id)

        assert exc_info.value.stage == "RESOLVING_PAYEE"
        assert exc_info.value.to_dict()["action"] == "retry_later"
        gateway.connected_customer.assert_not_awaited()
        gateway.checkout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unpriced_post_is_rejected(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator()
        post = await seed.post(creator, unlock_price_cents=None)

        with pytest.raises(InvalidRequest):
            await payments_service.create_post_unlock_checkout(db, user=fan, post_id=post.id)

        gateway.checkout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_post_is_not_found(self, db, seed, gateway):
        fan = await seed.fan()

        with pytest.raises(NotFound):
            await payments_service.create_post_unlock_checkout(db, user=fan, post_id="missing")

    @pytest.mark.asyncio
    async def test_anonymous_caller_is_rejected(self, db, seed, gateway):
        creator = await seed.creator()
        post = await seed.post(creator)

        with pytest.raises(Unauthenticated) as exc_info:
            await payments_service.create_post_unlock_checkout(db, user=None, post_id=post.id)

        assert exc_info.value.stage == "AUTHENTICATING"
        gateway.checkout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_failure_reports_stage(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator()
        post = await seed.post(creator)
        gateway.checkout.side_effect = GatewayError("Request timed out")

        with pytest.raises(GatewayError) as exc_info:
            await payments_service.create_post_unlock_checkout(db, user=fan, post_id=post.id)

        assert exc_info.value.stage == "BUILDING_SESSION"
        assert exc_info.value.status_code == 502


class TestSubscriptionCheckout:
    @pytest.mark.asyncio
    async def test_destination_charge_with_platform_fee(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator(subscription_price="9.99")

        await payments_service.create_subscription_checkout(db, user=fan, creator_id=creator.id)

        params, kwargs = _session_params(gateway.checkout)
        assert kwargs == {}
        assert params["mode"] == "subscription"
        assert params["customer"] == STRIPE_TEST_CUSTOMER_ID
        price_data = params["line_items"][0]["price_data"]
        assert price_data["unit_amount"] == 999
        assert price_data["recurring"] == {"interval": "month"}
        assert price_data["product_data"]["name"] == "Jenny B's Premium Content"
        assert params["subscription_data"]["application_fee_percent"] == 10
        assert params["subscription_data"]["transfer_data"] == {"destination": STRIPE_TEST_ACCOUNT_ID}
        assert params["metadata"]["type"] == "subscription"
        assert params["metadata"]["fanId"] == fan.id

    @pytest.mark.asyncio
    async def test_default_price_when_unset(self, db, seed, gateway):
        fan = await seed.fan()
        creator = await seed.creator(subscription_price=None)

        await payments_service.create_subscription_checkout(db, user=fan, creator_id=creator.id)

        params, _ = _session_params(gateway.checkout)
        assert params["line_items"][0]["price_data"]["unit_amount"] == 500

    @pytest.mark.asyncio
    async def test_new_customer_is_cached_on_profile(self, db, seed, gateway, async_session_maker):
        fan = await seed.fan()
        creator = await seed.creator()

        await payments_service.create_subscription_checkout(db, user=fan, creator_id=creator.id)

        gateway.platform_customer.assert_awaited_once_with(
            email=fan.email, fan_id=fan.id, cached_customer_id=None
        )
        async with async_session_maker() as other:
            stored = (await other.execute(select(FanProfile).where(FanProfile.id == fan.id))).scalar_one()
            assert stored.stripe_customer_id == STRIPE_TEST_CUSTOMER_ID

    @pytest.mark.asyncio
    async def test_cached_customer_is_passed_through(self, db, seed, gateway):
        fan = await seed.fan(stripe_customer_id=STRIPE_TEST_CUSTOMER_ID)
        creator = await seed.creator()

        await payments_service.create_subscription_checkout(db, user=fan, creator_id=creator.id)

        assert gateway.platform_customer.call_args.kwargs["cached_customer_id"] == STRIPE_TEST_CUSTOMER_ID

    @pytest.mark.asyncio
    async def test_unknown_creator_is_not_found(self, db, seed, gateway):
        fan = await seed.fan()

        with pytest.raises(NotFound):
            await payments_service.create_subscription_checkout(db, user=fan, creator_id="missing")

        gateway.platform_customer.assert_not_awaited()


class TestCoinCheckout:
    @pytest.mark.asyncio
    async def test_coin_package_checkout_has_no_fee(self, db, seed, gateway):
        fan = await seed.fan()

        await payments_service.create_coin_checkout(db, user=fan, package_type="medium")

        params, kwargs = _session_params(gateway.checkout)
        assert kwargs == {}
        assert "payment_intent_data" not in params
        assert params["line_items"][0]["price_data"]["unit_amount"] == 3999
        assert params["line_items"][0]["price_data"]["product_data"]["name"] == "500 Coins"
        assert params["metadata"] == {
            "userId": fan.id,
            "packageType": "medium",
            "coins": "500",
            "type": "coin_purchase",
        }
        assert params["success_url"] == f"{config.APP_URL}?coins=success"
        assert params["cancel_url"] == f"{config.APP_URL}?coins=cancelled"

    @pytest.mark.asyncio
    async def test_unknown_package_is_not_found(self, db, seed, gateway):
        fan = await seed.fan()

        with pytest.raises(NotFound):
            await payments_service.create_coin_checkout(db, user=fan, package_type="huge")

        gateway.platform_customer.assert_not_awaited()
        gateway.checkout.assert_not_awaited()

    def test_list_coin_packages(self):
        response = payments_service.list_coin_packages()

        assert [(p.package_type, p.coins, p.price_cents) for p in response.packages] == [
            ("small", 100, 999),
            ("medium", 500, 3999),
            ("large", 1000, 6999),
        ]


class TestCreatorConnect:
    @pytest.mark.asyncio
    async def test_onboarding_creates_account_once(self, db, seed, gateway, async_session_maker):
        owner = await seed.fan(email="jenny@example.com")
        creator = await seed.creator(owner=owner, connect_id=None)

        response = await payments_service.create_creator_onboarding(db, user=owner)

        assert response.account_id == "acct_NewCreator789"
        assert response.url == "https://connect.stripe.com/setup/s/abc"
        assert response.is_stripe_connected is False
        gateway.account_link.assert_awaited_once_with(
            "acct_NewCreator789",
            refresh_url=f"{config.APP_URL}/dashboard/monetization",
            return_url=f"{config.APP_URL}/dashboard/monetization?connected=true",
        )

        await payments_service.create_creator_onboarding(db, user=owner)
        gateway.connect_account.assert_awaited_once()

        async with async_session_maker() as other:
            stored = (await other.execute(select(Creator).where(Creator.id == creator.id))).scalar_one()
            assert stored.stripe_connect_id == "acct_NewCreator789"

    @pytest.mark.asyncio
    async def test_return_from_onboarding_marks_connected(self, db, seed, gateway):
        owner = await seed.fan(email="jenny@example.com")
        await seed.creator(owner=owner)

        response = await payments_service.create_creator_onboarding(db, user=owner, connected=True)

        gateway.retrieve_account.assert_awaited_once_with(STRIPE_TEST_ACCOUNT_ID)
        gateway.connect_account.assert_not_awaited()
        assert response.is_stripe_connected is True

    @pytest.mark.asyncio
    async def test_onboarding_requires_creator_profile(self, db, seed, gateway):
        fan = await seed.fan()

        with pytest.raises(NotFound):
            await payments_service.create_creator_onboarding(db, user=fan)

    @pytest.mark.asyncio
    async def test_product_price_creates_product_then_reuses_it(self, db, seed, gateway, async_session_maker):
        owner = await seed.fan(email="jenny@example.com")
        creator = await seed.creator(owner=owner)

        response = await payments_service.create_creator_product_price(db, user=owner, price=Decimal("12.50"))

        assert response.product_id == "prod_Premium1"
        assert response.price_id == "price_Monthly1"
        assert response.unit_amount == 1250
        assert response.subscription_price == 12.5
        gateway.price.assert_awaited_once_with(
            product_id="prod_Premium1",
            unit_amount=1250,
            creator_id=creator.id,
            connect_id=STRIPE_TEST_ACCOUNT_ID,
        )

        await payments_service.create_creator_product_price(db, user=owner, price=Decimal("7.99"))
        gateway.product.assert_awaited_once()

        async with async_session_maker() as other:
            stored = (await other.execute(select(Creator).where(Creator.id == creator.id))).scalar_one()
            assert stored.subscription_price == Decimal("7.99")
            assert stored.stripe_product_id == "prod_Premium1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [None, Decimal("0"), Decimal("-1")])
    async def test_product_price_must_be_positive(self, db, seed, gateway, price):
        owner = await seed.fan(email="jenny@example.com")
        await seed.creator(owner=owner)

        with pytest.raises(InvalidRequest):
            await payments_service.create_creator_product_price(db, user=owner, price=price)

        gateway.product.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_product_price_requires_connected_account(self, db, seed, gateway):
        owner = await seed.fan(email="jenny@example.com")
        await seed.creator(owner=owner, connect_id=None)

        with pytest.raises(PayoutNotConfigured) as exc_info:
            await payments_service.create_creator_product_price(db, user=owner, price=Decimal("5"))

        assert exc_info.value.message == "Please connect your Stripe account first"

    @pytest.mark.asyncio
    async def test_product_price_checks_caller_before_price(self, db, seed, gateway):
        fan = await seed.fan()

        with pytest.raises(Unauthenticated):
            await payments_service.create_creator_product_price(db, user=None, price=Decimal("0"))
        with pytest.raises(NotFound):
            await payments_service.create_creator_product_price(db, user=fan, price=Decimal("0"))

    @pytest.mark.asyncio
    async def test_product_price_commit_failure_is_storage_error(self, db, seed, gateway, monkeypatch):
        owner = await seed.fan(email="jenny@example.com")
        await seed.creator(owner=owner)
        monkeypatch.setattr(db, "commit", AsyncMock(side_effect=_db_down()))

        with pytest.raises(StorageError):
            await payments_service.create_creator_product_price(db, user=owner, price=Decimal("9.99"))

        gateway.price.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creator_lookup_failure_is_storage_error(self, db, seed, gateway, monkeypatch):
        owner = await seed.fan(email="jenny@example.com")
        monkeypatch.setattr(
            payments_service.payments_repository, "get_creator_by_user_id", AsyncMock(side_effect=_db_down())
        )

        with pytest.raises(StorageError):
            await payments_service.create_creator_onboarding(db, user=owner)

        gateway.connect_account.assert_not_awaited()


class TestWalletInfo:
    @pytest.mark.asyncio
    async def test_balance_with_recent_transactions(self, db, seed):
        fan = await seed.fan()
        await seed.wallet(fan, 40)

        info = await payments_service.get_wallet_info(db, SqlWalletStore(db), user=fan, include_transactions=True)

        assert info.coin_balance == 40
        assert info.recent_transactions == []

    @pytest.mark.asyncio
    async def test_history_failure_is_storage_error(self, db, seed, monkeypatch):
        fan = await seed.fan()
        monkeypatch.setattr(
            payments_service.payments_repository,
            "list_recent_wallet_transactions",
            AsyncMock(side_effect=_db_down()),
        )

        with pytest.raises(StorageError):
            await payments_service.get_wallet_info(db, SqlWalletStore(db), user=fan, include_transactions=True)


class TestStripeGateway:
    @pytest.mark.asyncio
    async def test_stripe_errors_become_gateway_errors(self, monkeypatch):
        def _timeout(**params):
            raise stripe.APIConnectionError("Request timed out")

        monkeypatch.setattr(stripe.checkout.Session, "create", _timeout)

        with pytest.raises(GatewayError) as exc_info:
            await stripe_service.create_checkout_session({"mode": "payment"})

        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_cached_platform_customer_skips_lookup(self, monkeypatch):
        lookup = AsyncMock()
        monkeypatch.setattr(stripe.Customer, "list", lookup)

        customer_id = await stripe_service.get_or_create_platform_customer(
            email="fan@example.com", fan_id="fan-1", cached_customer_id=STRIPE_TEST_CUSTOMER_ID
        )

        assert customer_id == STRIPE_TEST_CUSTOMER_ID
        lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_existing_platform_customer_is_reused(self, monkeypatch):
        monkeypatch.setattr(
            stripe.Customer, "list", lambda **params: SimpleNamespace(data=[SimpleNamespace(id="cus_Existing")])
        )

        customer_id = await stripe_service.get_or_create_platform_customer(email="fan@example.com", fan_id="fan-1")

        assert customer_id == "cus_Existing"

    @pytest.mark.asyncio
    async def test_sdk_calls_run_off_the_event_loop(self, monkeypatch):
        calls = []

        def _create(**params):
            calls.append(threading.current_thread())
            return SimpleNamespace(id="cs_test_thread", url="https://checkout.stripe.com/c/pay/cs_test_thread")

        monkeypatch.setattr(stripe.checkout.Session, "create", _create)

        session = await stripe_service.create_checkout_session({"mode": "payment"}, stripe_account="acct_1")

        assert session.id == "cs_test_thread"
        assert len(calls) == 1
        assert calls[0] is not threading.current_thread()
        assert calls[0].name.startswith("stripe")
