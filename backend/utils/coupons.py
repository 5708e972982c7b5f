from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from bson import ObjectId
from fastapi import HTTPException

from utils.money import from_cents


def compute_discount(coupon: dict, order_amount_cents: int) -> int:
    if coupon.get("discount_type") == "percentage":
        pct = Decimal(str(coupon.get("discount_value", 0)))
        discount = int((Decimal(order_amount_cents) * pct / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        cap = coupon.get("max_discount_amount_cents")
        if cap:
            discount = min(discount, int(cap))
    else:
        discount = int(coupon.get("discount_value_cents", 0))

    # never discount below zero
    return max(0, min(discount, order_amount_cents))


def validate_coupon(coupon: dict | None, user_id: ObjectId, order_amount_cents: int, now: datetime):
    if not coupon or not coupon.get("is_active"):
        raise HTTPException(404, "Invalid coupon code")

    if coupon.get("end_date") and coupon["end_date"] < now:
        raise HTTPException(400, "Coupon has expired")

    if coupon.get("start_date") and coupon["start_date"] > now:
        raise HTTPException(400, "Coupon is not yet active")

    usage_limit = coupon.get("usage_limit")
    if usage_limit and coupon.get("usage_count", 0) >= usage_limit:
        raise HTTPException(400, "Coupon usage limit reached")

    used = [u for u in coupon.get("used_by", []) if str(u.get("user_id")) == str(user_id)]
    if len(used) >= coupon.get("user_usage_limit", 1):
        raise HTTPException(400, "You have already used this coupon")

    min_amount = coupon.get("min_order_amount_cents", 0)
    if order_amount_cents < min_amount:
        raise HTTPException(400, f"Minimum order amount is {from_cents(min_amount):.2f}")


async def redeem_coupon(db, *, code: str, user_id: ObjectId, order_id: ObjectId, order_amount_cents: int, session=None) -> tuple[dict, int]:
    """
    Validate a coupon for this user and order and mark it used.
    Returns (coupon, discount_cents).
    """
    now = datetime.utcnow()
    coupon = await db.coupons.find_one({"code": code.strip().upper()}, session=session)
    validate_coupon(coupon, user_id, order_amount_cents, now)

    discount = compute_discount(coupon, order_amount_cents)

    # compare-and-set on usage_count so two checkouts cannot both take the last use
    result = await db.coupons.update_one(
        {"_id": coupon["_id"], "usage_count": coupon.get("usage_count")},
        {
            "$inc": {"usage_count": 1},
            "$push": {"used_by": {"user_id": user_id, "order_id": order_id, "used_at": now}},
        },
        session=session,
    )
    if result.modified_count == 0:
        raise HTTPException(409, "Coupon was used concurrently, please retry")

    return coupon, discount
