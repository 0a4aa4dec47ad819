"""
Order endpoints
Mounted at /api/orders
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from academy.auth.dependencies import get_current_user, require_admin
from academy.core.database import get_db
from academy.core.errors import AccessDeniedError
from academy.courses.database import is_admin
from academy.orders import service
from academy.orders.models import OrderCreate, CompleteOrderRequest, FailOrderRequest

router = APIRouter(tags=["Orders"])


def _ensure_self_or_admin(user: dict, user_id: str):
    if user["user_id"] != user_id and not is_admin(user):
        raise AccessDeniedError("Cannot access another user's orders")


@router.post("/", status_code=201)
async def create_order(
    data: OrderCreate,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    user_id = data.user_id or user["user_id"]
    _ensure_self_or_admin(user, user_id)

    order = await service.create_order(
        db,
        user_id,
        [item.model_dump() for item in data.courses],
        data.billing_info.model_dump(),
        data.payment_method.value,
        data.pricing.model_dump(),
    )
    return {"success": True, "message": "Order created successfully", "order": order}


@router.post("/complete")
async def complete_order(
    data: CompleteOrderRequest,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Manual completion; buyers settle through /api/payment/verify"""
    order = await service.complete_order(
        db, data.order_id, data.model_dump(exclude={"order_id"}, exclude_none=True)
    )
    return {"success": True, "message": "Order completed successfully", "order": order}


@router.post("/{order_id}/fail")
async def fail_order(
    order_id: str,
    data: FailOrderRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    scope = None if is_admin(user) else user["user_id"]
    await service.get_order(db, order_id, scope)
    order = await service.mark_order_failed(db, order_id, data.reason)
    return {"success": True, "message": "Order marked as failed", "order": order}


@router.get("/admin/all")
async def all_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    result = await service.get_all_orders(db, status, payment_status, page, limit)
    return {"success": True, **result}


@router.get("/user/{user_id}")
async def user_orders(
    user_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    _ensure_self_or_admin(user, user_id)
    orders = await service.get_user_orders(db, user_id)
    return {"success": True, "orders": orders}


@router.get("/purchased/{user_id}")
async def purchased_courses(
    user_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    _ensure_self_or_admin(user, user_id)
    courses = await service.get_user_purchased_courses(db, user_id)
    return {"success": True, "courses": courses}


@router.get("/check/{user_id}/{course_id}")
async def check_purchase(
    user_id: str,
    course_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    _ensure_self_or_admin(user, user_id)
    purchased = await service.has_user_purchased_course(db, user_id, course_id)
    return {"success": True, "has_purchased": purchased}


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    scope = None if is_admin(user) else user["user_id"]
    order = await service.get_order(db, order_id, scope)
    return {"success": True, "order": order}
