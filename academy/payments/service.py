import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.core.errors import IntegrityFailure, NotFoundError
from academy.orders.service import complete_order, mark_order_failed
from academy.payments.gateway import verify_payment_signature

logger = logging.getLogger(__name__)


async def settle_payment(
    db: AsyncIOMotorDatabase,
    order_id: str,
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str,
) -> dict:
    """
    Settle a gateway callback against an internal order.

    The callback must name the gateway order linked by create-order. A valid
    signature then completes the order, an invalid one fails it; exactly one
    of the two paths runs. Returns {"verified": bool, "order": {...}}.
    """
    order = await db.orders.find_one({"order_id": order_id})
    if not order:
        raise NotFoundError("Order")

    recorded = (order.get("payment") or {}).get("gateway_order_id")
    if not recorded:
        logger.warning("Payment callback for %s before a gateway order was linked", order_id)
        raise IntegrityFailure("No gateway order is linked to this order")
    if recorded != gateway_order_id:
        logger.warning(
            "Gateway order mismatch for %s: recorded %s, callback %s",
            order_id, recorded, gateway_order_id
        )
        raise IntegrityFailure("Gateway order does not belong to this order")

    if verify_payment_signature(gateway_order_id, gateway_payment_id, signature, secret):
        completed = await complete_order(db, order_id, {
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": gateway_payment_id,
            "gateway_signature": signature,
        })
        return {"verified": True, "order": completed}

    logger.warning("Payment signature mismatch for order %s (payment %s)", order_id, gateway_payment_id)
    failed = await mark_order_failed(db, order_id, "Payment signature verification failed")
    return {"verified": False, "order": failed}
