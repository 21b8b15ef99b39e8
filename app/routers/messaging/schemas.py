"""Pay-per-message schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field


class CreateThreadRequest(BaseModel):
    creator_id: str = Field(..., min_length=1)


class ThreadResponse(BaseModel):
    id: str
    creator_id: str
    fan_id: str
    last_message_at: Optional[str] = None
    created_at: Optional[str] = None


class PpmMessageResponse(BaseModel):
    id: str
    thread_id: str
    sender_id: str
    is_creator: bool
    text: Optional[str] = None
    is_priority: bool = False
    tip_cents: Optional[int] = None
    gift_emoji: Optional[str] = None
    gift_coin_cost: Optional[int] = None
    coin_cost: int = 0
    created_at: Optional[str] = None


class GetMessagesResponse(BaseModel):
    messages: List[PpmMessageResponse]


class SendPaidMessageRequest(BaseModel):
    text: str
    is_priority: bool = Field(False, description="Priority messages cost 20 coins instead of 10")


class SendTipRequest(BaseModel):
    tip_cents: int = Field(..., description="Tip amount in cents; charged at 1 coin per 10 cents, rounded up")


class SendGiftRequest(BaseModel):
    gift_id: str = Field(..., min_length=1)


class CreatorReplyRequest(BaseModel):
    text: str


class SpendResult(BaseModel):
    message: PpmMessageResponse
    coins_spent: int
    new_balance: int


class GiftResponse(BaseModel):
    id: str
    emoji: str
    name: Optional[str] = None
    coin_cost: int


class GiftsResponse(BaseModel):
    gifts: List[GiftResponse]
