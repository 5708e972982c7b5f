import asyncio
import logging
from datetime import datetime

from bson import ObjectId

from config import env
from utils.money import from_cents

logger = logging.getLogger(__name__)


class OrderNotVisibleError(Exception):
    pass


async def create_order_notification(db, order_id: ObjectId, user_id: ObjectId) -> dict:
    """
    Buyer-facing "order placed" notification.

    Retries a bounded number of times with a fixed delay, only to ride out
    a freshly committed order not being readable yet.
    """
    attempts = max(1, env.NOTIFICATION_MAX_RETRIES)

    for attempt in range(1, attempts + 1):
        order = await db.orders.find_one({"_id": order_id})
        if order:
            notification = {
                "user_id": user_id,
                "order_id": order_id,
                "title": "Order Placed Successfully",
                "message": (
                    f"Your order {order.get('order_number')} has been placed successfully. "
                    f"Total amount: {from_cents(order.get('total_price_cents')):.2f}"
                ),
                "type": "order",
                "is_read": False,
                "created_at": datetime.utcnow(),
            }
            await db.notifications.insert_one(notification)
            return notification

        if attempt < attempts:
            await asyncio.sleep(env.NOTIFICATION_RETRY_DELAY_SECONDS)

    raise OrderNotVisibleError(f"Order {order_id} not found after {attempts} attempts")


async def notify_order_placed(db, order_id: ObjectId, user_id: ObjectId) -> bool:
    # Notification must NEVER fail an order
    try:
        await create_order_notification(db, order_id, user_id)
        return True
    except Exception:
        logger.exception("ORDER_NOTIFICATION_FAILED order=%s user=%s", order_id, user_id)
        return False
