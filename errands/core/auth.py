"""
JWT access tokens for the settlement API.

Tokens are issued by the marketplace's login flow (outside this service); this
module only signs tokens for internal tooling and tests, and verifies incoming
bearer tokens.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from errands.core.config import settings
from errands.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Claims carried by an access token"""
    user_id: int
    role: str
    exp: int  # Unix timestamp


def create_access_token(user_id: int, role: str = "user") -> str:
    """Sign an access token for a user"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured; cannot sign tokens")
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.debug("JWT token created", extra_data={"user_id": user_id, "role": role})
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify a bearer token, returning None when invalid or expired"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty; tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
