import logging
from dataclasses import dataclass

from bson import ObjectId

from config.constants import (
    COMMISSION_RATE,
    ROLE_ADMIN,
    ROLE_SELLER,
    TX_CREDIT,
    WALLET_ADMIN,
    WALLET_SELLER,
)
from models.wallet import WalletTransaction
from utils.money import split_commission, from_cents
from utils.wallet_service import credit_seller_wallet, credit_admin_wallet

logger = logging.getLogger(__name__)

RESOLVED = "resolved"
DEGRADED = "degraded"
UNRESOLVED = "unresolved"


class SettlementError(Exception):
    """Commission could not be posted for one line item."""

    def __init__(self, message: str, item_index: int | None = None):
        super().__init__(message)
        self.item_index = item_index


@dataclass
class SellerResolution:
    status: str
    seller: dict | None = None
    reason: str | None = None

    @property
    def degraded(self) -> bool:
        return self.status == DEGRADED


# ======================================================
# Seller / admin resolution
# ======================================================

async def resolve_seller(db, seller_id, session=None) -> SellerResolution:
    """
    The seller on the line item, or a stand-in so the revenue is still
    posted to some seller. Stand-ins are returned as DEGRADED and the
    caller must flag the order for review.
    """
    if seller_id is not None:
        try:
            seller_oid = ObjectId(seller_id)
        except Exception:
            seller_oid = None
        if seller_oid is not None:
            seller = await db.users.find_one({"_id": seller_oid, "role": ROLE_SELLER}, session=session)
            if seller:
                return SellerResolution(RESOLVED, seller)

    seller = await db.users.find_one({"role": ROLE_SELLER, "is_active": True}, session=session)
    if seller:
        return SellerResolution(DEGRADED, seller, "seller_missing_fallback_active")

    seller = await db.users.find_one({"role": ROLE_SELLER}, session=session)
    if seller:
        return SellerResolution(DEGRADED, seller, "seller_missing_fallback_inactive")

    return SellerResolution(UNRESOLVED, None, "no_seller_accounts")


async def resolve_admin(db, session=None) -> dict | None:
    return await db.users.find_one({"role": ROLE_ADMIN}, session=session)


# ======================================================
# Settlement of one line item
# ======================================================

async def settle_line_item(db, item: dict, order: dict, session=None, index: int | None = None) -> dict:
    """
    Split one line into platform commission and seller earning and post
    both ledger entries. Resolution happens before any write, so a
    SettlementError leaves nothing behind for this item; the caller's
    transaction is still expected to abort the whole order.
    """
    price_cents = int(item.get("price_cents") or 0)
    qty = int(item.get("qty") or 0)
    if price_cents <= 0 or qty <= 0:
        raise SettlementError("Line item price and quantity must be positive", index)

    resolution = await resolve_seller(db, item.get("seller_id"), session=session)
    if resolution.status == UNRESOLVED:
        raise SettlementError("No seller account exists", index)

    admin = await resolve_admin(db, session=session)
    if not admin:
        raise SettlementError("Admin user not found", index)

    seller = resolution.seller
    if resolution.degraded:
        logger.warning(
            "SELLER_RESOLUTION_DEGRADED order=%s item=%s expected_seller=%s used_seller=%s reason=%s",
            order.get("_id"),
            item.get("_id"),
            item.get("seller_id"),
            seller["_id"],
            resolution.reason,
        )

    item_total, admin_commission, seller_earning = split_commission(price_cents, qty)
    paid_at = order.get("paid_at")
    name = item.get("name") or "item"

    seller_tx = WalletTransaction(
        wallet_type=WALLET_SELLER,
        tx_type=TX_CREDIT,
        amount_cents=seller_earning,
        description=f"Sale of {qty}x {name}",
        seller_id=seller["_id"],
        order_id=order["_id"],
        metadata={
            "order_number": order.get("order_number"),
            "item_id": str(item.get("_id")),
            "quantity": qty,
            "price_per_item": from_cents(price_cents),
            "total_amount": from_cents(item_total),
            "commission": from_cents(admin_commission),
            "commission_rate": float(COMMISSION_RATE),
            "seller_resolution": resolution.status,
        },
    )
    await credit_seller_wallet(db, seller["_id"], seller_tx, paid_at=paid_at, session=session)

    admin_tx = WalletTransaction(
        wallet_type=WALLET_ADMIN,
        tx_type=TX_CREDIT,
        amount_cents=admin_commission,
        description=f"Commission from sale of {name} by {seller.get('name') or seller['_id']}",
        seller_id=seller["_id"],
        order_id=order["_id"],
        metadata={
            "order_number": order.get("order_number"),
            "item_id": str(item.get("_id")),
            "quantity": qty,
            "commission_rate": float(COMMISSION_RATE),
            "seller_id": str(seller["_id"]),
            "seller_name": seller.get("name"),
            "admin_id": str(admin["_id"]),
        },
    )
    await credit_admin_wallet(db, admin_tx, paid_at=paid_at, session=session)

    return {
        "item_id": item.get("_id"),
        "seller_id": seller["_id"],
        "item_total_cents": item_total,
        "admin_commission_cents": admin_commission,
        "seller_earning_cents": seller_earning,
        "resolution": resolution.status,
        "resolution_reason": resolution.reason,
    }
