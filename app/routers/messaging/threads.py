from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_user, get_wallet
from app.models.user import FanProfile
from core.ports.payments import WalletPort

from .schemas import (
    CreateThreadRequest,
    CreatorReplyRequest,
    GetMessagesResponse,
    PpmMessageResponse,
    SendGiftRequest,
    SendPaidMessageRequest,
    SendTipRequest,
    SpendResult,
    ThreadResponse,
)
from .service import get_or_create_thread as service_get_or_create_thread
from .service import list_messages as service_list_messages
from .service import send_catalog_gift as service_send_catalog_gift
from .service import send_creator_reply as service_send_creator_reply
from .service import send_paid_message as service_send_paid_message
from .service import send_tip as service_send_tip

router = APIRouter(prefix="/ppm/threads", tags=["Pay-per-message"])


@router.post("", response_model=ThreadResponse)
async def open_thread(
    request: CreateThreadRequest,
    db: AsyncSession = Depends(get_async_db),
    current_user: FanProfile = Depends(get_current_user),
):
    """
    Open the caller's thread with a creator, or return the existing one.
    """
    return await service_get_or_create_thread(db, user=current_user, creator_id=request.creator_id)


@router.get("/{thread_id}/messages", response_model=GetMessagesResponse)
async def get_messages(
    thread_id: str,
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_async_db),
    current_user: FanProfile = Depends(get_current_user),
):
    return await service_list_messages(db, user=current_user, thread_id=thread_id, limit=limit)


@router.post("/{thread_id}/messages", response_model=SpendResult)
async def send_message(
    thread_id: str,
    request: SendPaidMessageRequest,
    db: AsyncSession = Depends(get_async_db),
    wallet: WalletPort = Depends(get_wallet),
    current_user: FanProfile = Depends(get_current_user),
):
    """
    Send a paid message to the creator. 10 coins, 20 for priority.
    Nothing is sent when the balance is too low.
    """
    return await service_send_paid_message(
        db,
        wallet,
        user=current_user,
        thread_id=thread_id,
        text=request.text,
        is_priority=request.is_priority,
    )


@router.post("/{thread_id}/tips", response_model=SpendResult)
async def send_tip(
    thread_id: str,
    request: SendTipRequest,
    db: AsyncSession = Depends(get_async_db),
    wallet: WalletPort = Depends(get_wallet),
    current_user: FanProfile = Depends(get_current_user),
):
    return await service_send_tip(
        db, wallet, user=current_user, thread_id=thread_id, tip_cents=request.tip_cents
    )


@router.post("/{thread_id}/gifts", response_model=SpendResult)
async def send_gift(
    thread_id: str,
    request: SendGiftRequest,
    db: AsyncSession = Depends(get_async_db),
    wallet: WalletPort = Depends(get_wallet),
    current_user: FanProfile = Depends(get_current_user),
):
    return await service_send_catalog_gift(
        db, wallet, user=current_user, thread_id=thread_id, gift_id=request.gift_id
    )


@router.post("/{thread_id}/replies", response_model=PpmMessageResponse)
async def send_creator_reply(
    thread_id: str,
    request: CreatorReplyRequest,
    db: AsyncSession = Depends(get_async_db),
    current_user: FanProfile = Depends(get_current_user),
):
    return await service_send_creator_reply(db, user=current_user, thread_id=thread_id, text=request.text)
