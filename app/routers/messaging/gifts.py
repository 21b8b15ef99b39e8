from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db

from .schemas import GiftsResponse
from .service import list_gifts as service_list_gifts

router = APIRouter(prefix="/ppm/gifts", tags=["Pay-per-message"])


@router.get("", response_model=GiftsResponse)
async def list_gifts(db: AsyncSession = Depends(get_async_db)):
    return await service_list_gifts(db)
