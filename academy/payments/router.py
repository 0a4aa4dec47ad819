"""
Payment endpoints
Mounted at /api/payment
"""

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from typing import Optional

from academy.auth.dependencies import get_current_user
from academy.core.config import config
from academy.core.database import get_db
from academy.core.errors import ConflictError, IntegrityFailure
from academy.courses.database import is_admin
from academy.orders.models import OrderStatus
from academy.orders.service import get_order, link_gateway_order
from academy.payments.gateway import PaymentGateway, get_gateway
from academy.payments.service import settle_payment

router = APIRouter(tags=["Payment"])


# ==================== REQUEST MODELS ====================

class CreateGatewayOrderRequest(BaseModel):
    order_id: str  # internal order to pay for
    receipt: Optional[str] = None

class VerifyPaymentRequest(BaseModel):
    order_id: str
    gateway_order_id: str
    gateway_payment_id: str
    gateway_signature: str


# ==================== ENDPOINTS ====================

@router.post("/create-order")
async def create_gateway_order(
    data: CreateGatewayOrderRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway)
):
    order = await get_order(db, data.order_id, user["user_id"])
    if order["status"] != OrderStatus.PENDING.value:
        raise ConflictError(f"Order is {order['status']}")

    # Charge the stored order total
    pricing = order["pricing"]
    gateway_order = gateway.create_order(
        pricing["total"],
        pricing.get("currency"),
        receipt=data.receipt or data.order_id,
        notes={"user_id": user["user_id"], "order_id": data.order_id},
    )

    await link_gateway_order(db, data.order_id, user["user_id"], gateway_order["id"])

    return {
        "success": True,
        "order": {
            "id": gateway_order["id"],
            "amount": gateway_order["amount"],
            "currency": gateway_order["currency"],
            "receipt": gateway_order.get("receipt"),
        },
        "key_id": gateway.key_id,
    }


@router.post("/verify")
async def verify_payment(
    data: VerifyPaymentRequest,
    user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    scope = None if is_admin(user) else user["user_id"]
    await get_order(db, data.order_id, scope)

    result = await settle_payment(
        db,
        data.order_id,
        data.gateway_order_id,
        data.gateway_payment_id,
        data.gateway_signature,
        config.RAZORPAY_KEY_SECRET,
    )
    if not result["verified"]:
        raise IntegrityFailure("Payment verification failed")

    return {
        "success": True,
        "message": "Payment verified successfully",
        "order": result["order"],
    }


@router.get("/status/{payment_id}")
async def payment_status(
    payment_id: str,
    user: dict = Depends(get_current_user),
    gateway: PaymentGateway = Depends(get_gateway)
):
    payment = gateway.fetch_payment(payment_id)
    return {
        "success": True,
        "payment": {
            "id": payment.get("id"),
            "status": payment.get("status"),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "order_id": payment.get("order_id"),
            "method": payment.get("method"),
        },
    }
