"""
Account endpoints
Mounted at /api/auth
"""

from fastapi import APIRouter, Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from academy.auth import accounts
from academy.auth.dependencies import get_current_user, require_admin
from academy.auth.models import RegisterRequest, LoginRequest, StatusUpdateRequest, ProfileData
from academy.core.database import get_db

router = APIRouter(tags=["Auth"])


def _client_info(request: Request):
    user_agent = request.headers.get("user-agent", "")
    ip_address = (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown"
    )
    return user_agent, ip_address


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    user_agent, ip_address = _client_info(request)
    result = await accounts.register_user(db, data, user_agent, ip_address)
    return {"success": True, "message": "User registered successfully", **result}


@router.post("/login")
async def login(
    data: LoginRequest,
    request: Request,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    user_agent, ip_address = _client_info(request)
    result = await accounts.login_user(db, data.email, data.password, user_agent, ip_address)
    return {"success": True, "message": "Login successful", **result}


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    return {"success": True, "user": accounts.public_user(user)}


@router.put("/profile")
async def update_profile(
    profile: ProfileData,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    updated = await accounts.update_profile(db, user["user_id"], profile)
    return {"success": True, "message": "Profile updated successfully", "user": updated}


# ==================== ADMIN ====================

@router.get("/users")
async def list_users(
    user_type: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await accounts.get_all_users(db, user_type, status, page, limit)
    return {"success": True, **result}


@router.put("/users/{user_id}/status")
async def update_user_status(
    user_id: str,
    data: StatusUpdateRequest,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    user = await accounts.update_user_status(db, user_id, data.status, data.reason)
    return {"success": True, "message": "User status updated successfully", "user": user}


@router.get("/analytics")
async def user_analytics(
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    return {"success": True, "analytics": await accounts.get_user_analytics(db)}


@router.delete("/cleanup-test-users")
async def cleanup_test_users(
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    deleted = await accounts.cleanup_test_users(db)
    return {
        "success": True,
        "message": f"Cleaned up {deleted} test users",
        "deleted_count": deleted
    }
