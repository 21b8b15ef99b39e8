from fastapi import APIRouter

from . import gifts, threads

router = APIRouter()
router.include_router(threads.router)
router.include_router(gifts.router)
