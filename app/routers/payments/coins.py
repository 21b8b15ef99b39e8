"""Coins Router - Coin package catalog."""

from fastapi import APIRouter

from .schemas import CoinPackagesResponse
from .service import list_coin_packages as service_list_coin_packages

router = APIRouter(prefix="/coins", tags=["Coins"])


@router.get("/packages", response_model=CoinPackagesResponse)
async def list_coin_packages():
    return service_list_coin_packages()
