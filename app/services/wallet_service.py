"""
Wallet Service - Coin balance reads, atomic debits and idempotent credits
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.wallet import Wallet, WalletTransaction
from core.errors import InsufficientFunds, InvalidRequest, StorageError

logger = logging.getLogger(__name__)


class SqlWalletStore:
    """
    Wallet store bound to one AsyncSession.

    Never commits: debits, credits and ledger rows join the caller's unit of
    work, so rolling the session back undoes them together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _read_balance(self, user_id: str) -> Optional[int]:
        stmt = select(Wallet.coin_balance).where(Wallet.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _ensure_wallet(self, user_id: str) -> int:
        balance = await self._read_balance(user_id)
        if balance is not None:
            return balance

        self.db.add(Wallet(user_id=user_id, coin_balance=0, updated_at=datetime.utcnow()))
        try:
            await self.db.flush()
        except IntegrityError:
            # Created concurrently by another request
            await self.db.rollback()
            balance = await self._read_balance(user_id)
            return balance or 0

        logger.info(f"Created wallet for user={user_id}")
        return 0

    async def get_balance(self, user_id: str) -> int:
        """
        Get the coin balance for a user, creating an empty wallet on first read.

        Call before any other pending writes in the session: a concurrent
        creation is resolved by rolling the session back.
        """
        try:
            return await self._ensure_wallet(user_id)
        except SQLAlchemyError as exc:
            logger.error(f"Failed to read wallet for user={user_id}: {exc}")
            raise StorageError() from exc

    async def debit(self, user_id: str, amount: int, *, kind: str) -> int:
        """
        Deduct coins with a single conditional UPDATE.

        The balance check and the decrement happen in one statement, so two
        concurrent spenders can never drive the balance below zero.

        Returns:
            New balance in coins

        Raises:
            InvalidRequest: If amount is not positive
            InsufficientFunds: If the balance is lower than amount (nothing is written)
        """
        if amount is None or int(amount) <= 0:
            raise InvalidRequest("Debit amount must be greater than 0")
        amount = int(amount)

        try:
            stmt = (
                update(Wallet)
                .where(and_(Wallet.user_id == user_id, Wallet.coin_balance >= amount))
                .values(
                    coin_balance=Wallet.coin_balance - amount,
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)

            if result.rowcount != 1:
                balance = await self._read_balance(user_id)
                logger.warning(
                    f"WALLET_DEBIT_REJECTED | user={user_id} | balance={balance or 0} | required={amount} | kind={kind}"
                )
                raise InsufficientFunds(balance=balance or 0, required=amount)

            self.db.add(
                WalletTransaction(
                    user_id=user_id,
                    amount_coins=-amount,
                    kind=kind,
                    created_at=datetime.utcnow(),
                )
            )
            await self.db.flush()
            new_balance = await self._read_balance(user_id)
        except SQLAlchemyError as exc:
            logger.error(f"Wallet debit failed for user={user_id}: {exc}")
            raise StorageError() from exc

        logger.info(f"WALLET_DEBIT | user={user_id} | amount={amount} | balance={new_balance} | kind={kind}")
        return new_balance

    async def credit(
        self,
        user_id: str,
        amount: int,
        *,
        kind: str,
        external_ref_type: Optional[str] = None,
        external_ref_id: Optional[str] = None,
    ) -> int:
        """
        Add coins to a wallet, creating it if needed.

        Idempotent per (external_ref_type, external_ref_id, kind): a replay of
        the same reference returns the current balance without crediting again.
        """
        if amount is None or int(amount) <= 0:
            raise InvalidRequest("Credit amount must be greater than 0")
        amount = int(amount)

        try:
            if external_ref_type and external_ref_id:
                stmt = select(WalletTransaction.id).where(
                    and_(
                        WalletTransaction.external_ref_type == external_ref_type,
                        WalletTransaction.external_ref_id == external_ref_id,
                        WalletTransaction.kind == kind,
                    )
                )
                existing = (await self.db.execute(stmt)).scalar_one_or_none()
                if existing is not None:
                    logger.info(f"Duplicate ledger entry detected: {external_ref_type}/{external_ref_id}/{kind}")
                    return await self._read_balance(user_id) or 0

            await self._ensure_wallet(user_id)

            stmt = (
                update(Wallet)
                .where(Wallet.user_id == user_id)
                .values(
                    coin_balance=Wallet.coin_balance + amount,
                    updated_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(stmt)
            self.db.add(
                WalletTransaction(
                    user_id=user_id,
                    amount_coins=amount,
                    kind=kind,
                    external_ref_type=external_ref_type,
                    external_ref_id=external_ref_id,
                    created_at=datetime.utcnow(),
                )
            )
            await self.db.flush()
            new_balance = await self._read_balance(user_id)
        except SQLAlchemyError as exc:
            logger.error(f"Wallet credit failed for user={user_id}: {exc}")
            raise StorageError() from exc

        logger.info(f"WALLET_CREDIT | user={user_id} | amount={amount} | balance={new_balance} | kind={kind}")
        return new_balance

    async def release(self, user_id: str, amount: int, *, kind: str) -> int:
        """
        Compensate a debit whose event could not be written.

        The debit lives in the caller's session, which has already been rolled
        back by the time this runs, so there is nothing left to undo here.
        """
        balance = await self._read_balance(user_id)
        logger.info(f"WALLET_RELEASE | user={user_id} | amount={amount} | balance={balance or 0} | kind={kind}")
        return balance or 0
