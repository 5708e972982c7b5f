from fastapi import APIRouter, Depends, HTTPException, Query

from config.constants import ROLE_ADMIN, ROLE_BUYER, ROLE_SELLER
from database import get_db
from models.order import OrderCreate, OrderStatusUpdate, PaymentResult
from utils.guards import assert_self_or_admin, parse_object_id
from utils.order_settlement import create_order, mark_order_paid, update_order_status
from utils.security import get_current_user, get_optional_user, require_role
from utils.serializers import serialize_doc, serialize_docs, serialize_order


router = APIRouter(
    prefix="/api/orders",
    tags=["Orders"]
)


# ======================================================
# CREATE ORDER
# ======================================================

@router.post("", status_code=201)
async def place_order(
    payload: OrderCreate,
    user=Depends(get_optional_user),
    db=Depends(get_db),
):
    result = await create_order(db, payload, user)

    return {
        "message": "Order placed successfully",
        "order": serialize_order(result["order"]),
        "commission": serialize_doc(result["commission"]),
    }


# ======================================================
# CONFIRM PAYMENT
# ======================================================

@router.put("/{order_id}/pay")
async def pay_order(
    order_id: str,
    payment_result: PaymentResult,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    result = await mark_order_paid(db, order_id, payment_result, user)

    if result["already_paid"]:
        return {
            "message": "Order was already paid",
            "order": serialize_order(result["order"]),
        }

    return {
        "message": "Order paid and settled",
        "order": serialize_order(result["order"]),
        "commission": serialize_doc(result["commission"]),
    }


# ======================================================
# STATUS TRANSITIONS
# ======================================================

@router.post("/updateStatus")
async def change_order_status(
    payload: OrderStatusUpdate,
    user=Depends(require_role(ROLE_ADMIN, ROLE_SELLER, ROLE_BUYER)),
    db=Depends(get_db),
):
    result = await update_order_status(db, payload.order_id, payload.status, user)
    order = result["order"]

    return {
        "message": f"Order status updated to {order['status']}",
        "order": serialize_order(order),
    }


# ======================================================
# READS
# ======================================================

@router.get("/myorders")
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"user_id": user["_id"]}
    orders = await (
        db.orders.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
    total = await db.orders.count_documents(query)

    return {
        "orders": [serialize_order(o) for o in orders],
        "page": page,
        "total": total,
    }


@router.get("/seller/{seller_id}")
async def seller_orders(
    seller_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    seller_oid = parse_object_id(seller_id, "seller_id")
    assert_self_or_admin(user, seller_oid, "Not authorized to view these orders")

    query = {"items.seller_id": seller_oid}
    orders = await (
        db.orders.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
    total = await db.orders.count_documents(query)

    return {
        "orders": [serialize_order(o) for o in orders],
        "page": page,
        "total": total,
    }


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise HTTPException(404, "Order not found")

    assert_self_or_admin(user, order["user_id"], "Not authorized to view this order")

    return {"order": serialize_order(order)}


# =========================================================
# ORDER TIMELINE
# =========================================================

@router.get("/{order_id}/timeline")
async def get_order_timeline(
    order_id: str,
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    order = await db.orders.find_one({"_id": parse_object_id(order_id, "order_id")})
    if not order:
        raise HTTPException(404, "Order not found")

    is_item_seller = user.get("role") == ROLE_SELLER and any(
        str(i.get("seller_id")) == str(user["_id"]) for i in order.get("items", [])
    )
    if not is_item_seller:
        assert_self_or_admin(user, order["user_id"], "Not authorized to view this order")

    events = await db.order_timeline.find(
        {"order_id": order["_id"]}
    ).sort("created_at", 1).to_list(None)

    return {
        "order_id": order_id,
        "events": serialize_docs(events),
    }
