import asyncio
import os
from decimal import Decimal

os.environ.setdefault("TESTING", "true")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db import Base
from app.models.creator import ContentPackage, Creator, Post
from app.models.messaging import Gift, PpmThread
from app.models.user import FanProfile
from app.models.wallet import Wallet
from core.errors import InsufficientFunds, InvalidRequest, StorageError

STRIPE_TEST_ACCOUNT_ID = "acct_1032D82eZvKYlo2C"
STRIPE_TEST_CUSTOMER_ID = "cus_TestCustomer123"


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    db_path = tmp_path / "coins_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def async_session_maker(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(async_session_maker):
    async with async_session_maker() as session:
        yield session


class Seeder:
    """Inserts committed rows for a test scenario."""

    def __init__(self, session):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def fan(self, email="fan@example.com", *, descope_user_id=None, stripe_customer_id=None):
        return await self._save(
            FanProfile(
                email=email,
                descope_user_id=descope_user_id or f"descope-{email}",
                stripe_customer_id=stripe_customer_id,
            )
        )

    async def creator(
        self,
        *,
        owner=None,
        handle="@jenny",
        connect_id=STRIPE_TEST_ACCOUNT_ID,
        subscription_price=None,
        is_stripe_connected=False,
    ):
        if owner is None:
            owner = await self.fan(email=f"owner-{handle.strip('@')}@example.com")
        return await self._save(
            Creator(
                user_id=owner.id,
                name="Jenny",
                display_name="Jenny B",
                handle=handle,
                stripe_connect_id=connect_id,
                is_stripe_connected=is_stripe_connected,
                subscription_price=Decimal(str(subscription_price)) if subscription_price is not None else None,
                subscribers=0,
            )
        )

    async def post(self, creator, *, unlock_price_cents=499, caption="Beach day"):
        return await self._save(
            Post(creator_id=creator.id, caption=caption, unlock_price_cents=unlock_price_cents)
        )

    async def package(self, creator, *, price_cents=1999, title="Summer bundle"):
        return await self._save(
            ContentPackage(creator_id=creator.id, title=title, description="10 photos", price_cents=price_cents)
        )

    async def thread(self, creator, fan):
        return await self._save(PpmThread(creator_id=creator.id, fan_id=fan.id))

    async def wallet(self, user, balance):
        return await self._save(Wallet(user_id=user.id, coin_balance=balance))

    async def gift(self, *, emoji="🌹", name="Rose", coin_cost=50):
        return await self._save(Gift(emoji=emoji, name=name, coin_cost=coin_cost))


@pytest.fixture
def seed(db):
    return Seeder(db)


class FakeWalletStore:
    """In-memory wallet; each debit is check-and-decrement under one lock."""

    def __init__(self, balances=None):
        self.balances = dict(balances or {})
        self.ledger = []
        self.fail_release = False
        self._lock = asyncio.Lock()

    async def get_balance(self, user_id):
        return self.balances.setdefault(user_id, 0)

    async def debit(self, user_id, amount, *, kind):
        if amount <= 0:
            raise InvalidRequest("Debit amount must be greater than 0")
        async with self._lock:
            balance = self.balances.get(user_id, 0)
            # Yield so concurrent callers really interleave
            await asyncio.sleep(0)
            if balance < amount:
                raise InsufficientFunds(balance=balance, required=amount)
            self.balances[user_id] = balance - amount
            self.ledger.append((user_id, -amount, kind))
            return self.balances[user_id]

    async def credit(self, user_id, amount, *, kind, external_ref_type=None, external_ref_id=None):
        async with self._lock:
            self.balances[user_id] = self.balances.get(user_id, 0) + amount
            self.ledger.append((user_id, amount, kind))
            return self.balances[user_id]

    async def release(self, user_id, amount, *, kind):
        if self.fail_release:
            raise StorageError()
        return await self.credit(user_id, amount, kind=f"{kind}_release")


@pytest.fixture
def fake_wallet():
    return FakeWalletStore()
