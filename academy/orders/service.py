"""
Order lifecycle: pending -> completed | cancelled

Completion is a conditional status transition followed by an idempotent
per-course purchase grant. There is no multi-document transaction; calling
complete_order again finishes any grant that did not land.
"""

import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from academy.core.database import serialize_mongo, serialize_many, timestamped_id
from academy.core.errors import ConflictError, NotFoundError, ValidationError
from academy.courses.database import get_courses, effective_price
from academy.orders.models import OrderStatus, PaymentStatus, PaymentMethod

logger = logging.getLogger(__name__)

ORDER_ID_ATTEMPTS = 5


def new_order_id() -> str:
    return timestamped_id("ORD", 9)


# ==================== CREATE ====================

async def _snapshot_line_items(db: AsyncIOMotorDatabase, course_ids: List[str]) -> List[dict]:
    """Title, price and thumbnail as stored at purchase time"""
    courses = {c["course_id"]: c for c in await get_courses(db, course_ids)}
    missing = [cid for cid in course_ids if cid not in courses]
    if missing:
        raise NotFoundError(f"Course {missing[0]}")

    return [
        {
            "course_id": cid,
            "title": courses[cid].get("title", ""),
            "price": effective_price(courses[cid]),
            "thumbnail": courses[cid].get("thumbnail", ""),
        }
        for cid in course_ids
    ]


async def create_order(
    db: AsyncIOMotorDatabase,
    user_id: str,
    line_items: List[dict],
    billing_info: dict,
    payment_method: str = PaymentMethod.RAZORPAY.value,
    pricing: Optional[dict] = None,
) -> dict:
    user = await db.users.find_one({"user_id": user_id}, {"_id": 1})
    if not user:
        raise NotFoundError("User")

    # Same course twice in one order collapses to one line
    course_ids = list(dict.fromkeys(item["course_id"] for item in line_items))
    if not course_ids:
        raise ValidationError("Order must contain at least one course")

    items = await _snapshot_line_items(db, course_ids)

    pricing = pricing or {}
    subtotal = sum(item["price"] for item in items)
    discount = min(pricing.get("discount", 0) or 0, subtotal)
    now = datetime.utcnow()

    order = {
        "user_id": user_id,
        "courses": items,
        "billing_info": billing_info,
        "payment": {
            "method": PaymentMethod(payment_method).value,
            "status": PaymentStatus.PENDING.value,
            "gateway_order_id": None,
            "gateway_payment_id": None,
            "gateway_signature": None,
            "transaction_id": None,
            "paid_at": None,
        },
        "pricing": {
            "subtotal": subtotal,
            "discount": discount,
            "total": subtotal - discount,
            "currency": pricing.get("currency") or "INR",
        },
        "status": OrderStatus.PENDING.value,
        "order_date": now,
        "completed_at": None,
        "notes": None,
    }

    for _ in range(ORDER_ID_ATTEMPTS):
        order["order_id"] = new_order_id()
        order.pop("_id", None)
        try:
            await db.orders.insert_one(order)
        except DuplicateKeyError:
            logger.warning("Order id collision on %s, retrying", order["order_id"])
            continue
        logger.info("Order created: %s for user %s (%d courses)", order["order_id"], user_id, len(items))
        return serialize_mongo(order)

    raise ConflictError("Could not allocate a unique order id")


# ==================== COMPLETE / FAIL ====================

async def grant_purchases(db: AsyncIOMotorDatabase, order: dict) -> int:
    """Append each ordered course to the buyer once. Returns how many were new."""
    granted = 0
    for item in order.get("courses", []):
        result = await db.users.update_one(
            {"user_id": order["user_id"], "purchased_courses.course_id": {"$ne": item["course_id"]}},
            {"$push": {"purchased_courses": {
                "course_id": item["course_id"],
                "purchased_at": datetime.utcnow(),
                "order_id": order["order_id"],
            }}}
        )
        granted += result.modified_count
    return granted


async def complete_order(db: AsyncIOMotorDatabase, order_id: str, gateway_details: Optional[dict] = None) -> dict:
    now = datetime.utcnow()
    updates = {
        "status": OrderStatus.COMPLETED.value,
        "completed_at": now,
        "payment.status": PaymentStatus.COMPLETED.value,
        "payment.paid_at": now,
    }
    for key, value in (gateway_details or {}).items():
        if value is not None:
            updates[f"payment.{key}"] = value

    order = await db.orders.find_one_and_update(
        {"order_id": order_id, "status": OrderStatus.PENDING.value},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )

    if order is None:
        order = await db.orders.find_one({"order_id": order_id})
        if not order:
            raise NotFoundError("Order")
        if order["status"] != OrderStatus.COMPLETED.value:
            raise ConflictError(f"Order is {order['status']} and cannot be completed")
        logger.info("Order %s already completed, re-checking purchase grants", order_id)
    else:
        logger.info("Order completed: %s", order_id)

    granted = await grant_purchases(db, order)
    if granted:
        logger.info("Granted %d course(s) to %s from %s", granted, order["user_id"], order_id)

    return serialize_mongo(order)


async def mark_order_failed(db: AsyncIOMotorDatabase, order_id: str, reason: Optional[str] = None) -> dict:
    order = await db.orders.find_one_and_update(
        {"order_id": order_id, "status": OrderStatus.PENDING.value},
        {"$set": {
            "status": OrderStatus.CANCELLED.value,
            "payment.status": PaymentStatus.FAILED.value,
            "notes": reason,
        }},
        return_document=ReturnDocument.AFTER
    )

    if order is None:
        order = await db.orders.find_one({"order_id": order_id})
        if not order:
            raise NotFoundError("Order")
        if order["status"] != OrderStatus.CANCELLED.value:
            raise ConflictError(f"Order is {order['status']} and cannot be marked failed")
        return serialize_mongo(order)

    logger.info("Order failed: %s (%s)", order_id, reason or "no reason given")
    return serialize_mongo(order)


async def link_gateway_order(db: AsyncIOMotorDatabase, order_id: str, user_id: str, gateway_order_id: str) -> dict:
    """Remember which gateway order pays for a pending internal order"""
    order = await db.orders.find_one_and_update(
        {"order_id": order_id, "user_id": user_id, "status": OrderStatus.PENDING.value},
        {"$set": {"payment.gateway_order_id": gateway_order_id}},
        return_document=ReturnDocument.AFTER
    )
    if order is None:
        existing = await db.orders.find_one({"order_id": order_id, "user_id": user_id})
        if not existing:
            raise NotFoundError("Order")
        raise ConflictError(f"Order is {existing['status']}")
    return serialize_mongo(order)


# ==================== QUERIES ====================

async def get_order(db: AsyncIOMotorDatabase, order_id: str, user_id: Optional[str] = None) -> dict:
    query = {"order_id": order_id}
    if user_id:
        query["user_id"] = user_id
    order = await db.orders.find_one(query)
    if not order:
        raise NotFoundError("Order")
    return serialize_mongo(order)


async def get_user_orders(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    orders = await db.orders.find({"user_id": user_id}).sort("order_date", -1).to_list(length=None)
    return serialize_many(orders)


async def get_user_purchased_courses(db: AsyncIOMotorDatabase, user_id: str) -> List[dict]:
    user = await db.users.find_one({"user_id": user_id}, {"purchased_courses": 1})
    if not user:
        raise NotFoundError("User")

    purchases = user.get("purchased_courses", [])
    courses = {
        c["course_id"]: c
        for c in await get_courses(db, [p["course_id"] for p in purchases])
    }

    result = []
    for purchase in purchases:
        course = courses.get(purchase["course_id"])
        if not course:
            continue
        result.append({
            "course_id": course["course_id"],
            "title": course.get("title", ""),
            "thumbnail": course.get("thumbnail", ""),
            "instructor": course.get("instructor", ""),
            "category": course.get("category", ""),
            "level": course.get("level", ""),
            "purchased_at": purchase.get("purchased_at"),
            "order_id": purchase.get("order_id"),
        })
    return result


async def has_user_purchased_course(db: AsyncIOMotorDatabase, user_id: str, course_id: str) -> bool:
    count = await db.users.count_documents(
        {"user_id": user_id, "purchased_courses.course_id": course_id}
    )
    return count > 0


async def get_all_orders(
    db: AsyncIOMotorDatabase,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    query = {}
    if status:
        query["status"] = status
    if payment_status:
        query["payment.status"] = payment_status

    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = await db.orders.count_documents(query)
    orders = await (
        db.orders.find(query)
        .sort("order_date", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(length=limit)
    )
    return {
        "orders": serialize_many(orders),
        "pagination": {
            "current_page": page,
            "total_pages": (total + limit - 1) // limit,
            "total_orders": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        },
    }
