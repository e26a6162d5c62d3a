"""
FastAPI dependencies for authenticating API callers

Usage:
    @router.get("/status")
    async def status(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from errands.core.auth import verify_token
from errands.core.logging import get_logger
from errands.db.database import get_db
from errands.db.models.user import User
from errands.domain.services.account_service import AccountService

logger = get_logger(__name__)

security = HTTPBearer()

# Banned runners keep access to these so they can still see and pay their debt
_BANNED_ALLOWED_PREFIXES = ("/api/balance",)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Verify the bearer token and load the caller from the store.

    Raises 401 for a bad token, 403 for an unknown or banned user (banned users
    may still reach the balance endpoints).
    """
    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = await AccountService(db).get_user(token_data.user_id)
    if user is None:
        logger.warning("Token for unknown user", extra_data={"user_id": token_data.user_id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not found",
        )

    if user.is_banned and not request.url.path.startswith(_BANNED_ALLOWED_PREFIXES):
        logger.warning(
            "Banned user access denied",
            extra_data={"user_id": user.id, "path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been banned. Please settle your balance.",
        )

    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Admin-only endpoints"""
    if not user.is_admin:
        logger.warning("Admin access denied", extra_data={"user_id": user.id})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
