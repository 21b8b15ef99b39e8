"""Wallet Router - Coin balance for the current user."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_user, get_wallet
from app.models.user import FanProfile
from core.ports.payments import WalletPort

from .schemas import WalletBalanceResponse
from .service import get_wallet_info as service_get_wallet_info

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/me", response_model=WalletBalanceResponse)
async def get_wallet_info(
    user: FanProfile = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    wallet: WalletPort = Depends(get_wallet),
    include_transactions: bool = False,
):
    """
    Get the coin balance for the current user.
    """
    return await service_get_wallet_info(
        db, wallet, user=user, include_transactions=include_transactions
    )
