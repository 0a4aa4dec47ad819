from fastapi import Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from academy.auth.accounts import ensure_account_usable
from academy.auth.models import UserType
from academy.auth.tokens import verify_token
from academy.core.database import get_db
from academy.core.errors import AccessDeniedError, AuthenticationError, NotFoundError

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """Extract user_id from a signed Bearer token"""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authentication required")

    claims = verify_token(authorization.split(" ", 1)[1].strip())
    return claims.user_id

async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> dict:
    """Load the authenticated user's document"""
    user = await db.users.find_one({"user_id": user_id})
    if not user:
        raise NotFoundError("User")
    ensure_account_usable(user)
    return user

async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("user_type") != UserType.ADMIN.value:
        raise AccessDeniedError("Admin access required")
    return user
