import logging
from functools import lru_cache

from descope import AuthException, DescopeClient

from config import DESCOPE_JWT_LEEWAY, DESCOPE_JWT_LEEWAY_FALLBACK, DESCOPE_PROJECT_ID
from core.errors import Unauthenticated

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def get_descope_client(leeway: int) -> DescopeClient:
    """Descope client with the given JWT leeway, built on first use."""
    if not DESCOPE_PROJECT_ID:
        logger.error("DESCOPE_PROJECT_ID not set - cannot validate sessions")
        raise Unauthenticated("Authentication is not configured")
    logger.info(f"Descope client initialized with JWT leeway: {leeway}s")
    return DescopeClient(project_id=DESCOPE_PROJECT_ID, jwt_validation_leeway=leeway)


def _extract_user_info(session) -> dict:
    if not isinstance(session, dict):
        logger.error("Descope session validation failed: session is not a dictionary")
        raise Unauthenticated("Invalid session format")

    user_id = session.get("userId") or session.get("sub")
    if not user_id:
        logger.error("Descope JWT validation failed: missing userId in session")
        raise Unauthenticated("Invalid token: missing user ID")

    login_ids = session.get("loginIds")
    if isinstance(login_ids, list) and login_ids:
        email = login_ids[0]
    else:
        email = session.get("email")
        login_ids = [email] if email else []

    if not email:
        email = f"user_{user_id}@descope.local"
        login_ids = [email]
        logger.warning(f"No email found for user {user_id}, using placeholder: {email}")

    return {
        "userId": user_id,
        "sub": session.get("sub"),
        "loginIds": login_ids,
        "email": email,
        "name": session.get("name"),
    }


def validate_descope_jwt(token: str) -> dict:
    """
    Validate Descope session JWT and return user info.
    In case of time skew issues, retry with a higher leeway.

    Args:
        token (str): Descope session JWT token

    Returns:
        dict: userId, email and loginIds of the session owner

    Raises:
        Unauthenticated: If token validation fails or user info is missing
    """
    try:
        session = get_descope_client(DESCOPE_JWT_LEEWAY).validate_session(token)
        return _extract_user_info(session)
    except AuthException as e:
        logger.warning(f"Descope JWT validation failed: {e}")

    try:
        logger.info(f"Retrying JWT validation with fallback leeway: {DESCOPE_JWT_LEEWAY_FALLBACK}s")
        session = get_descope_client(DESCOPE_JWT_LEEWAY_FALLBACK).validate_session(token)
    except AuthException as e2:
        logger.warning(f"High leeway validation also failed: {e2}")
        raise Unauthenticated("Invalid or expired token") from e2
    return _extract_user_info(session)
