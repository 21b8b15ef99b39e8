"""Pay-per-message repository layer."""

from sqlalchemy import desc, select


async def get_creator(db, *, creator_id: str):
    from app.models.creator import Creator

    stmt = select(Creator).where(Creator.id == creator_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_thread(db, *, thread_id: str):
    from app.models.messaging import PpmThread

    stmt = select(PpmThread).where(PpmThread.id == thread_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_thread_for_pair(db, *, creator_id: str, fan_id: str):
    from app.models.messaging import PpmThread

    stmt = select(PpmThread).where(
        PpmThread.creator_id == creator_id, PpmThread.fan_id == fan_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def create_thread(db, *, creator_id: str, fan_id: str):
    from app.models.messaging import PpmThread

    thread = PpmThread(creator_id=creator_id, fan_id=fan_id)
    db.add(thread)
    return thread


def create_message(db, **fields):
    from app.models.messaging import PpmMessage

    message = PpmMessage(**fields)
    db.add(message)
    return message


async def list_recent_messages(db, *, thread_id: str, limit: int):
    """Newest `limit` messages of a thread, returned oldest first."""
    from app.models.messaging import PpmMessage

    stmt = (
        select(PpmMessage)
        .where(PpmMessage.thread_id == thread_id)
        .order_by(desc(PpmMessage.created_at))
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(reversed(result.scalars().all()))


async def get_gift(db, *, gift_id: str):
    from app.models.messaging import Gift

    stmt = select(Gift).where(Gift.id == gift_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def list_gifts(db):
    from app.models.messaging import Gift

    stmt = select(Gift).order_by(Gift.coin_cost, Gift.name)
    result = await db.execute(stmt)
    return result.scalars().all()
