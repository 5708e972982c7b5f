import logging
from datetime import datetime
from uuid import uuid4

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException

from config.constants import (
    CREDIT_REASON_ORDER_CANCELLED,
    CREDIT_REASON_ORDER_PAYMENT,
    CREDIT_REASON_ORDER_RETURNED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PENDING,
    ORDER_STATUSES,
    REFUND_STATUSES,
    ROLE_BUYER,
    ROLE_SELLER,
    TX_CREDIT,
    TX_DEBIT,
)
from models.order import OrderCreate, PaymentResult
from utils.audit import log_audit
from utils.commission import DEGRADED, SettlementError, settle_line_item
from utils.coupons import redeem_coupon
from utils.credit import apply_credit_change
from utils.guards import assert_self_or_admin, parse_object_id
from utils.inventory import RESERVE, RESTORE, adjust_stock, find_variant_index, is_variable_product
from utils.money import to_cents
from utils.notifications import notify_order_placed
from utils.order_timeline import record_order_event
from utils.transactions import run_in_transaction

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    return f"ORD-{uuid4().hex[:10].upper()}"


# ======================================================
# COLLABORATOR LOOKUPS
# ======================================================

async def find_product_by_id(db, product_id, session=None) -> dict:
    product = await db.products.find_one({"_id": parse_object_id(product_id, "product")}, session=session)
    if not product:
        raise HTTPException(404, f"Product not found: {product_id}")
    return product


async def find_user_by_id(db, user_id, session=None) -> dict:
    user = await db.users.find_one({"_id": parse_object_id(user_id, "user")}, session=session)
    if not user:
        raise HTTPException(404, "User not found")
    return user


async def _find_order(db, order_id: ObjectId, session=None) -> dict:
    order = await db.orders.find_one({"_id": order_id}, session=session)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


# ======================================================
# SETTLEMENT (ALL OR NOTHING PER ORDER)
# ======================================================

def _summarize(results: list[dict]) -> dict:
    return {
        "admin_commission_cents": sum(r["admin_commission_cents"] for r in results),
        "seller_earnings_cents": sum(r["seller_earning_cents"] for r in results),
        "items": results,
    }


async def _settle_order(db, order: dict, session, products: list[dict] | None = None) -> dict:
    """
    Settle every line of the order in array order. With `products` given,
    stock for each line is reserved right before its commission is posted.

    Items whose commission cannot be posted are collected so the error can
    say how many failed; any failure raises, and the surrounding
    transaction discards everything this order wrote.
    """
    items = order["items"]
    results = []
    failures = []

    for idx, item in enumerate(items):
        if products is not None:
            await adjust_stock(db, products[idx], item, RESERVE, session=session)
        try:
            results.append(await settle_line_item(db, item, order, session=session, index=idx))
        except SettlementError as e:
            failures.append((idx, str(e)))

    if failures:
        logger.error(
            "COMMISSION_SETTLEMENT_FAILED order=%s failed=%s total=%s errors=%s",
            order["_id"],
            len(failures),
            len(items),
            failures,
        )
        reasons = "; ".join(f"item {idx + 1}: {msg}" for idx, msg in failures)
        raise HTTPException(
            500,
            f"Commission settlement failed for {len(failures)} of {len(items)} item(s): {reasons}",
        )

    summary = _summarize(results)
    update = {"commission": summary, "updated_at": datetime.utcnow()}

    degraded = [r for r in results if r["resolution"] == DEGRADED]
    if degraded:
        update["needs_review"] = True
        update["review_reasons"] = sorted({r["resolution_reason"] for r in degraded})
        await log_audit(
            db,
            actor_id="system",
            actor_role="system",
            action="COMMISSION_SELLER_SUBSTITUTED",
            metadata={
                "order_id": str(order["_id"]),
                "items": [
                    {
                        "item_id": str(r["item_id"]),
                        "credited_seller_id": str(r["seller_id"]),
                        "reason": r["resolution_reason"],
                    }
                    for r in degraded
                ],
            },
            session=session,
        )

    await db.orders.update_one({"_id": order["_id"]}, {"$set": update}, session=session)
    return summary


# ======================================================
# CREATE ORDER
# ======================================================

def _catalog_seller_id(value):
    # older catalog rows keep the seller as a hex string
    if value is None or isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


async def _build_line_items(db, payload: OrderCreate, session) -> tuple[list[dict], list[dict]]:
    items, products = [], []

    for line in payload.order_items:
        product = await find_product_by_id(db, line.product, session=session)
        attributes = [a.model_dump() for a in line.selected_attributes]

        price_cents = int(product.get("price_cents") or 0)
        if is_variable_product(product):
            idx = find_variant_index(product, attributes)
            if idx is not None:
                price_cents = int(product["variants"][idx].get("price_cents") or price_cents)

        items.append({
            "_id": ObjectId(),
            "product_id": product["_id"],
            "seller_id": _catalog_seller_id(product.get("seller_id")),
            "name": product.get("name"),
            "price_cents": price_cents,
            "qty": line.qty,
            "selected_attributes": attributes,
        })
        products.append(product)

    return items, products


async def create_order(db, payload: OrderCreate, current_user: dict | None) -> dict:
    if not payload.order_items:
        raise HTTPException(400, "No order items")

    # authenticated caller wins over a body-supplied user id
    if current_user:
        user_id = current_user["_id"]
    elif payload.user:
        user_id = parse_object_id(payload.user, "user")
    else:
        raise HTTPException(400, "User ID is required")

    async def _txn(session):
        now = datetime.utcnow()
        user = await find_user_by_id(db, user_id, session=session)
        order_id = ObjectId()
        order_number = generate_order_number()

        items, products = await _build_line_items(db, payload, session)
        items_price = sum(i["price_cents"] * i["qty"] for i in items)
        tax_price = to_cents(payload.tax_price)
        shipping_price = to_cents(payload.shipping_price)

        discount = 0
        coupon_code = None
        if payload.coupon_code:
            coupon, discount = await redeem_coupon(
                db,
                code=payload.coupon_code,
                user_id=user_id,
                order_id=order_id,
                order_amount_cents=items_price,
                session=session,
            )
            coupon_code = coupon["code"]

        total_price = items_price + tax_price + shipping_price - discount

        credit_used = to_cents(payload.credit_used)
        if credit_used > total_price:
            raise HTTPException(400, "Store credit applied exceeds order total")
        if credit_used > 0:
            await apply_credit_change(
                db,
                user_id=user_id,
                tx_type=TX_DEBIT,
                amount_cents=credit_used,
                reason=CREDIT_REASON_ORDER_PAYMENT,
                description=f"Store credit used for order {order_number}",
                order_id=order_id,
                session=session,
            )

        # payment is authorized upstream; the order is born paid
        order = {
            "_id": order_id,
            "order_number": order_number,
            "user_id": user_id,
            "items": items,
            "shipping_address": payload.shipping_address,
            "payment_method": payload.payment_method,
            "is_paid": True,
            "paid_at": now,
            "payment_result": {
                "id": f"PAY-{order_number}",
                "status": "COMPLETED",
                "update_time": now.isoformat(),
                "email_address": user.get("email"),
            },
            "is_delivered": False,
            "delivered_at": None,
            "status": ORDER_STATUS_PENDING,
            "items_price_cents": items_price,
            "tax_price_cents": tax_price,
            "shipping_price_cents": shipping_price,
            "discount_cents": discount,
            "total_price_cents": total_price,
            "credit_used_cents": credit_used,
            "coupon_code": coupon_code,
            "stock_reserved": True,
            "refunded_to_credit": False,
            "refund_amount_cents": 0,
            "commission": None,
            "needs_review": False,
            "created_at": now,
            "updated_at": now,
        }
        await db.orders.insert_one(order, session=session)

        summary = await _settle_order(db, order, session, products=products)

        await record_order_event(
            db,
            order_id=order_id,
            event="ORDER_CREATED",
            actor_role=(current_user or user).get("role", "buyer"),
            actor_id=(current_user or user)["_id"],
            metadata={"total_price_cents": total_price, "items": len(items)},
            session=session,
        )

        return await _find_order(db, order_id, session=session), summary

    order, summary = await run_in_transaction(db, _txn)

    await notify_order_placed(db, order["_id"], order["user_id"])

    return {"order": order, "commission": summary}


# ======================================================
# CONFIRM PAYMENT
# ======================================================

async def mark_order_paid(db, order_id, payment_result: PaymentResult, actor: dict) -> dict:
    order_oid = parse_object_id(order_id, "order_id")

    async def _txn(session):
        order = await _find_order(db, order_oid, session=session)
        assert_self_or_admin(actor, order["user_id"], "Not authorized to pay this order")

        if order.get("is_paid"):
            return order, None

        if order.get("status") in REFUND_STATUSES:
            raise HTTPException(400, f"Cannot pay an order that is {order['status']}")

        now = datetime.utcnow()
        paid_fields = {
            "is_paid": True,
            "paid_at": now,
            "payment_result": payment_result.model_dump(),
            "updated_at": now,
        }
        result = await db.orders.update_one(
            {"_id": order_oid, "is_paid": {"$ne": True}},
            {"$set": paid_fields},
            session=session,
        )
        if result.modified_count == 0:
            raise HTTPException(409, "Order payment changed concurrently, please retry")
        order.update(paid_fields)

        summary = await _settle_order(db, order, session)

        await record_order_event(
            db,
            order_id=order_oid,
            event="PAYMENT_CONFIRMED",
            actor_role=actor.get("role", "buyer"),
            actor_id=actor["_id"],
            metadata={"payment_id": payment_result.id, "payment_status": payment_result.status},
            session=session,
        )

        return await _find_order(db, order_oid, session=session), summary

    order, summary = await run_in_transaction(db, _txn)

    if summary is None:
        return {"order": order, "commission": None, "already_paid": True}

    await notify_order_placed(db, order["_id"], order["user_id"])
    return {"order": order, "commission": summary, "already_paid": False}


# ======================================================
# STATUS TRANSITIONS (REFUND TO CREDIT + RESTOCK)
# ======================================================

async def _restock_order(db, order: dict, session) -> int:
    restored = 0
    for item in order.get("items", []):
        product = await db.products.find_one({"_id": item["product_id"]}, session=session)
        if not product:
            logger.warning("RESTOCK_SKIPPED order=%s product=%s reason=product_missing", order["_id"], item["product_id"])
            continue
        if await adjust_stock(db, product, item, RESTORE, session=session):
            restored += 1
    return restored


async def update_order_status(db, order_id, new_status: str, actor: dict) -> dict:
    new_status = (new_status or "").strip().lower()
    if new_status not in ORDER_STATUSES:
        raise HTTPException(400, f"Invalid status. Allowed: {', '.join(sorted(ORDER_STATUSES))}")

    order_oid = parse_object_id(order_id, "order_id")

    async def _txn(session):
        now = datetime.utcnow()
        order = await _find_order(db, order_oid, session=session)
        current = order.get("status")

        if actor.get("role") == ROLE_SELLER and not any(
            str(i.get("seller_id")) == str(actor["_id"]) for i in order.get("items", [])
        ):
            raise HTTPException(403, "Not authorized to update this order")
        if actor.get("role") == ROLE_BUYER:
            # buyers may only cancel their own order
            assert_self_or_admin(actor, order["user_id"], "Not authorized to update this order")
            if new_status != ORDER_STATUS_CANCELLED:
                raise HTTPException(403, "Buyers can only cancel orders")

        if current in REFUND_STATUSES and new_status not in REFUND_STATUSES:
            raise HTTPException(400, f"Order is already {current}")
        if current == ORDER_STATUS_DELIVERED and new_status == ORDER_STATUS_CANCELLED:
            raise HTTPException(400, "Delivered orders cannot be cancelled; mark them returned")

        set_fields = {"status": new_status, "updated_at": now}
        if new_status == ORDER_STATUS_DELIVERED:
            set_fields["is_delivered"] = True
            set_fields["delivered_at"] = now

        query = {"_id": order_oid}
        refund = None

        if (
            new_status in REFUND_STATUSES
            and order.get("is_paid")
            and not order.get("refunded_to_credit")
        ):
            refund_amount = int(order.get("total_price_cents") or 0)
            reason = (
                CREDIT_REASON_ORDER_CANCELLED
                if new_status == ORDER_STATUS_CANCELLED
                else CREDIT_REASON_ORDER_RETURNED
            )
            if refund_amount > 0:
                refund = await apply_credit_change(
                    db,
                    user_id=order["user_id"],
                    tx_type=TX_CREDIT,
                    amount_cents=refund_amount,
                    reason=reason,
                    description=f"Refund for {new_status} order {order.get('order_number')}",
                    order_id=order_oid,
                    session=session,
                )

            if order.get("stock_reserved"):
                await _restock_order(db, order, session)
                set_fields["stock_reserved"] = False

            set_fields["refunded_to_credit"] = True
            set_fields["refund_amount_cents"] = refund_amount
            set_fields["refunded_at"] = now
            query["refunded_to_credit"] = {"$ne": True}

        result = await db.orders.update_one(query, {"$set": set_fields}, session=session)
        if result.matched_count == 0:
            raise HTTPException(409, "Order changed concurrently, please retry")

        await record_order_event(
            db,
            order_id=order_oid,
            event="STATUS_CHANGED",
            actor_role=actor.get("role", "system"),
            actor_id=actor.get("_id"),
            metadata={
                "from": current,
                "to": new_status,
                "refund_amount_cents": refund["amount_cents"] if refund else 0,
            },
            session=session,
        )

        return await _find_order(db, order_oid, session=session)

    order = await run_in_transaction(db, _txn)
    return {"order": order}
