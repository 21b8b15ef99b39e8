"""
Async Dependencies for Authentication and the Wallet Store
"""
import logging

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.models.user import FanProfile
from auth import validate_descope_jwt
from core.errors import StorageError, Unauthenticated
from core.payments import get_wallet_store
from core.ports.payments import WalletPort

logger = logging.getLogger(__name__)


async def _find_profile(db: AsyncSession, *, descope_user_id: str, email: str):
    stmt = select(FanProfile).where(FanProfile.descope_user_id == descope_user_id)
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user:
        return user

    # Profiles created before Descope integration are linked by email
    stmt = select(FanProfile).where(FanProfile.email == email)
    existing_user = (await db.execute(stmt)).scalar_one_or_none()
    if existing_user:
        existing_user.descope_user_id = descope_user_id
        await db.commit()
        await db.refresh(existing_user)
    return existing_user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_async_db)
) -> FanProfile:
    """
    Extracts and validates Descope JWT from Authorization header.
    Returns the caller's FanProfile, creating it on first sign-in.
    """
    auth_header = request.headers.get('authorization') or request.headers.get('Authorization')
    if not auth_header or not auth_header.lower().startswith('bearer '):
        raise Unauthenticated("Authorization token missing.")
    token = auth_header.split(' ', 1)[1].strip()
    user_info = validate_descope_jwt(token)

    descope_user_id = user_info['userId']
    email = user_info['email']

    try:
        user = await _find_profile(db, descope_user_id=descope_user_id, email=email)
        if user:
            return user

        user = FanProfile(descope_user_id=descope_user_id, email=email)
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as exc:
            # First sign-in raced with another request for the same account
            await db.rollback()
            user = await _find_profile(db, descope_user_id=descope_user_id, email=email)
            if not user:
                logger.error(f"Failed to create fan profile for Descope user {descope_user_id}: {exc}")
                raise StorageError() from exc
            return user

        await db.refresh(user)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(f"Failed to load fan profile for Descope user {descope_user_id}: {exc}")
        raise StorageError() from exc

    logger.info(f"Created fan profile {user.id} for Descope user {descope_user_id}")
    return user


def get_wallet(db: AsyncSession = Depends(get_async_db)) -> WalletPort:
    """Wallet store bound to the request's session."""
    return get_wallet_store(db)
