"""
Authentication dependency.

Identity is delegated to the identity provider: callers send its HS256
bearer JWT and the `sub` claim is the caller's profile id.
"""
import logging

from fastapi import Request
from jose import jwt, JWTError

from app.core.config import settings
from app.core.errors import ChargingError

logger = logging.getLogger(__name__)


def _decode(token: str) -> dict:
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE or None,
        options=options,
    )


def get_current_profile_id(request: Request) -> str:
    """
    Extract the caller's profile id from the Authorization header.

    Raises:
        ChargingError(authentication): token missing, invalid, expired or without `sub`
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise ChargingError.unauthenticated()

    token = auth_header[7:]  # Remove "Bearer " prefix

    try:
        payload = _decode(token)
    except jwt.ExpiredSignatureError:
        raise ChargingError.unauthenticated("Token has expired.")
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise ChargingError.unauthenticated()

    profile_id = payload.get("sub")
    if not profile_id or not isinstance(profile_id, str):
        raise ChargingError.unauthenticated()

    request.state.user_id = profile_id
    return profile_id
