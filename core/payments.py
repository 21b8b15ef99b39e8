"""Payments/Wallet facade for other domains."""

from sqlalchemy.ext.asyncio import AsyncSession

from core.ports.payments import WalletPort


def get_wallet_store(db: AsyncSession) -> WalletPort:
    from app.services.wallet_service import SqlWalletStore

    return SqlWalletStore(db)


async def get_wallet_balance(db: AsyncSession, *, user_id: str) -> int:
    return await get_wallet_store(db).get_balance(user_id)
