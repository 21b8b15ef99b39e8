from fastapi import APIRouter

from . import checkout, coins, stripe_connect, stripe_webhook, wallet

router = APIRouter()
router.include_router(wallet.router)
router.include_router(coins.router)
router.include_router(checkout.router)
router.include_router(stripe_webhook.router)
router.include_router(stripe_connect.router)
