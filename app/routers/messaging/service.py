"""Pay-per-message service layer.

Every paid action follows the same unit of work: price it, check the caller
owns the thread, debit the wallet, append the message, then commit once.
Coins never leave a wallet without a message recording why.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from config import PPM_MAX_MESSAGE_LENGTH, PPM_MESSAGE_HISTORY_LIMIT
from core.errors import (
    CoinEconomyError,
    DanglingDebit,
    InvalidRequest,
    NotFound,
    StorageError,
    Unauthenticated,
)
from core.ports.payments import WalletPort
from core.pricing import gift_cost, gift_label, message_cost, tip_cost, tip_label

from . import repository as messaging_repository
from .schemas import (
    GetMessagesResponse,
    GiftResponse,
    GiftsResponse,
    PpmMessageResponse,
    SpendResult,
    ThreadResponse,
)

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _message_response(message) -> PpmMessageResponse:
    return PpmMessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        sender_id=message.sender_id,
        is_creator=bool(message.is_creator),
        text=message.text,
        is_priority=bool(message.is_priority),
        tip_cents=message.tip_cents,
        gift_emoji=message.gift_emoji,
        gift_coin_cost=message.gift_coin_cost,
        coin_cost=message.coin_cost or 0,
        created_at=_iso(message.created_at),
    )


def _thread_response(thread) -> ThreadResponse:
    return ThreadResponse(
        id=thread.id,
        creator_id=thread.creator_id,
        fan_id=thread.fan_id,
        last_message_at=_iso(thread.last_message_at),
        created_at=_iso(thread.created_at),
    )


def _clean_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidRequest("Message cannot be empty")
    if len(cleaned) > PPM_MAX_MESSAGE_LENGTH:
        raise InvalidRequest(f"Message exceeds maximum length of {PPM_MAX_MESSAGE_LENGTH} characters")
    return cleaned


def _require_user(user):
    if user is None:
        raise Unauthenticated()
    return user


@asynccontextmanager
async def _storage_guard(db, context: str):
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"PPM_READ_FAILED | {context} | error={exc}")
        raise StorageError() from exc


async def _get_fan_thread(db, *, user, thread_id: str):
    thread = await messaging_repository.get_thread(db, thread_id=thread_id)
    if not thread or thread.fan_id != user.id:
        raise NotFound("Thread not found")
    return thread


async def _spend(
    db,
    wallet: WalletPort,
    *,
    user,
    thread_id: str,
    cost: int,
    kind: str,
    message_fields: Callable[[], dict],
) -> SpendResult:
    user = _require_user(user)
    user_id = user.id
    try:
        thread = await _get_fan_thread(db, user=user, thread_id=thread_id)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"PPM_SPEND_FAILED | user={user_id} | thread={thread_id} | kind={kind} | error={exc}")
        raise StorageError() from exc

    try:
        new_balance = await wallet.debit(user_id, cost, kind=kind)
    except CoinEconomyError:
        await db.rollback()
        raise

    try:
        now = datetime.utcnow()
        message = messaging_repository.create_message(
            db,
            thread_id=thread.id,
            sender_id=user_id,
            is_creator=False,
            coin_cost=cost,
            created_at=now,
            **message_fields(),
        )
        thread.last_message_at = now
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"PPM_SPEND_FAILED | user={user_id} | thread={thread_id} | kind={kind} | coins={cost} | error={exc}")
        try:
            await wallet.release(user_id, cost, kind=kind)
        except (CoinEconomyError, SQLAlchemyError) as release_exc:
            logger.error(
                f"PPM_DANGLING_DEBIT | user={user_id} | thread={thread_id} | kind={kind} | coins={cost} | error={release_exc}"
            )
            raise DanglingDebit() from release_exc
        raise StorageError() from exc

    logger.info(
        f"PPM_SPEND | user={user_id} | thread={thread_id} | kind={kind} | coins={cost} | balance={new_balance}"
    )
    return SpendResult(
        message=_message_response(message),
        coins_spent=cost,
        new_balance=new_balance,
    )


# --- Paid actions ---


async def send_paid_message(
    db, wallet: WalletPort, *, user, thread_id: str, text: str, is_priority: bool = False
) -> SpendResult:
    """
    Send a text message to a creator: 10 coins, or 20 for a priority message.

    Raises:
        InvalidRequest: Empty or over-long text
        NotFound: Thread missing or not owned by the caller
        InsufficientFunds: Balance below the message cost (nothing is written)
    """
    cleaned = _clean_text(text)
    return await _spend(
        db,
        wallet,
        user=user,
        thread_id=thread_id,
        cost=message_cost(is_priority),
        kind="priority_message" if is_priority else "message",
        message_fields=lambda: {"text": cleaned, "is_priority": bool(is_priority)},
    )


async def send_tip(db, wallet: WalletPort, *, user, thread_id: str, tip_cents: int) -> SpendResult:
    cost = tip_cost(tip_cents)
    return await _spend(
        db,
        wallet,
        user=user,
        thread_id=thread_id,
        cost=cost,
        kind="tip",
        message_fields=lambda: {"text": tip_label(tip_cents), "tip_cents": int(tip_cents)},
    )


async def send_gift(
    db, wallet: WalletPort, *, user, thread_id: str, gift_emoji: str, coin_cost: int
) -> SpendResult:
    cost = gift_cost(coin_cost)
    return await _spend(
        db,
        wallet,
        user=user,
        thread_id=thread_id,
        cost=cost,
        kind="gift",
        message_fields=lambda: {
            "text": gift_label(gift_emoji),
            "gift_emoji": gift_emoji,
            "gift_coin_cost": cost,
        },
    )


async def send_catalog_gift(db, wallet: WalletPort, *, user, thread_id: str, gift_id: str) -> SpendResult:
    """Send a gift priced from the catalog, never from the client."""
    _require_user(user)
    async with _storage_guard(db, f"gift={gift_id}"):
        gift = await messaging_repository.get_gift(db, gift_id=gift_id)
    if not gift:
        raise NotFound("Gift not found")
    return await send_gift(
        db,
        wallet,
        user=user,
        thread_id=thread_id,
        gift_emoji=gift.emoji,
        coin_cost=gift.coin_cost,
    )


# --- Threads ---


async def get_or_create_thread(db, *, user, creator_id: str) -> ThreadResponse:
    user = _require_user(user)
    fan_id = user.id

    async with _storage_guard(db, f"creator={creator_id} | fan={fan_id}"):
        creator = await messaging_repository.get_creator(db, creator_id=creator_id)
        if not creator:
            raise NotFound("Creator not found")
        if creator.user_id == fan_id:
            raise InvalidRequest("You cannot open a message thread with yourself")

        thread = await messaging_repository.get_thread_for_pair(db, creator_id=creator_id, fan_id=fan_id)
        if thread:
            return _thread_response(thread)

        messaging_repository.create_thread(db, creator_id=creator_id, fan_id=fan_id)
        try:
            await db.commit()
        except IntegrityError:
            # Opened concurrently; the unique (creator_id, fan_id) pair keeps one row
            await db.rollback()
        thread = await messaging_repository.get_thread_for_pair(db, creator_id=creator_id, fan_id=fan_id)
        if not thread:
            raise StorageError()

    logger.info(f"PPM_THREAD | thread={thread.id} | creator={creator_id} | fan={fan_id}")
    return _thread_response(thread)


async def list_messages(db, *, user, thread_id: str, limit: Optional[int] = None) -> GetMessagesResponse:
    user = _require_user(user)
    limit = min(max(int(limit or PPM_MESSAGE_HISTORY_LIMIT), 1), PPM_MESSAGE_HISTORY_LIMIT)

    async with _storage_guard(db, f"thread={thread_id}"):
        thread = await messaging_repository.get_thread(db, thread_id=thread_id)
        if not thread:
            raise NotFound("Thread not found")
        if thread.fan_id != user.id:
            creator = await messaging_repository.get_creator(db, creator_id=thread.creator_id)
            if not creator or creator.user_id != user.id:
                raise NotFound("Thread not found")

        messages = await messaging_repository.list_recent_messages(db, thread_id=thread.id, limit=limit)
    return GetMessagesResponse(messages=[_message_response(m) for m in messages])


async def send_creator_reply(db, *, user, thread_id: str, text: str) -> PpmMessageResponse:
    """Creators answer in their own threads for free."""
    user = _require_user(user)
    cleaned = _clean_text(text)

    async with _storage_guard(db, f"thread={thread_id}"):
        thread = await messaging_repository.get_thread(db, thread_id=thread_id)
        creator = None
        if thread:
            creator = await messaging_repository.get_creator(db, creator_id=thread.creator_id)
    if not thread or not creator or creator.user_id != user.id:
        raise NotFound("Thread not found")
    creator_id = creator.id

    try:
        now = datetime.utcnow()
        message = messaging_repository.create_message(
            db,
            thread_id=thread.id,
            sender_id=user.id,
            is_creator=True,
            text=cleaned,
            coin_cost=0,
            created_at=now,
        )
        thread.last_message_at = now
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"PPM_REPLY_FAILED | creator={creator_id} | thread={thread_id} | error={exc}")
        raise StorageError() from exc

    return _message_response(message)


# --- Gifts ---


async def list_gifts(db) -> GiftsResponse:
    async with _storage_guard(db, "gift catalog"):
        gifts = await messaging_repository.list_gifts(db)
    return GiftsResponse(
        gifts=[
            GiftResponse(id=g.id, emoji=g.emoji, name=g.name, coin_cost=g.coin_cost)
            for g in gifts
        ]
    )
