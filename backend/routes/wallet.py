from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from config.constants import (
    ADMIN_WALLET_ID,
    ROLE_ADMIN,
    ROLE_SELLER,
    TX_CREDIT,
    TX_DEBIT,
    WALLET_ADMIN,
    WALLET_SELLER,
    WITHDRAWAL_PENDING,
)
from database import get_db
from models.wallet import SellerWalletAdjustment, WalletTransaction, WithdrawalCreate, WithdrawalReject
from utils.audit import log_audit
from utils.guards import assert_self_or_admin, parse_object_id
from utils.money import from_cents, to_cents
from utils.security import require_role
from utils.serializers import serialize_doc, serialize_docs, serialize_wallet
from utils.transactions import run_in_transaction
from utils.wallet_service import (
    credit_seller_wallet,
    debit_seller_wallet,
    get_ledger_totals,
    get_or_create_admin_wallet,
    month_key,
)
from utils.withdrawals import approve_withdrawal, reject_withdrawal, request_withdrawal
from workers.wallet_reconciliation_worker import reconcile_wallets


router = APIRouter(
    prefix="/api/wallet",
    tags=["Wallet"]
)


def _current_month() -> str:
    return month_key(datetime.utcnow())


def _public_request(request: dict) -> dict:
    data = serialize_doc(request)
    bank = dict(data.get("bank_details") or {})
    bank.pop("bank_account_encrypted", None)
    data["bank_details"] = bank
    return data


def _public_requests(requests: list[dict]) -> list[dict]:
    return [_public_request(r) for r in requests]


# ======================================================
# WITHDRAWALS (SELLER)
# ======================================================

@router.post("/withdraw", status_code=201)
async def create_withdrawal(
    payload: WithdrawalCreate,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    if user.get("role") == ROLE_ADMIN:
        if not payload.seller_id:
            raise HTTPException(400, "seller_id is required")
        seller_id = payload.seller_id
    else:
        if payload.seller_id and payload.seller_id != str(user["_id"]):
            raise HTTPException(403, "Sellers can only withdraw from their own wallet")
        seller_id = user["_id"]

    request = await request_withdrawal(db, seller_id, payload.amount, payload.bank_details)

    return {
        "message": "Withdrawal request submitted",
        "request": _public_request(request),
    }


@router.get("/seller/withdrawals/{seller_id}")
async def seller_withdrawals(
    seller_id: str,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    seller_oid = parse_object_id(seller_id, "seller_id")
    assert_self_or_admin(user, seller_oid, "Not authorized to view these withdrawals")

    requests = await db.withdrawal_requests.find(
        {"seller_id": seller_oid}
    ).sort("requested_at", -1).to_list(None)

    return {"withdrawals": _public_requests(requests)}


# ======================================================
# WITHDRAWALS (ADMIN)
# ======================================================

@router.get("/admin/withdrawals/pending")
async def pending_withdrawals(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    requests = await db.withdrawal_requests.find(
        {"status": WITHDRAWAL_PENDING}
    ).sort("requested_at", 1).to_list(None)

    return {"withdrawals": _public_requests(requests)}


@router.get("/admin/withdrawals")
async def all_withdrawals(
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    query = {"status": status} if status else {}
    requests = await (
        db.withdrawal_requests.find(query)
        .sort("requested_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
    total = await db.withdrawal_requests.count_documents(query)

    return {
        "withdrawals": _public_requests(requests),
        "page": page,
        "total": total,
    }


@router.put("/admin/withdrawals/{request_id}/approve")
async def approve_withdrawal_request(
    request_id: str,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    result = await approve_withdrawal(db, request_id, admin)

    wallet = serialize_wallet(result["wallet"], _current_month())
    wallet.pop("transactions", None)

    return {
        "message": "Withdrawal approved",
        "request": _public_request(result["request"]),
        "wallet": wallet,
        "payout": serialize_doc(result["payout"]),
    }


@router.put("/admin/withdrawals/{request_id}/reject")
async def reject_withdrawal_request(
    request_id: str,
    payload: WithdrawalReject,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    result = await reject_withdrawal(db, request_id, payload.remarks, admin)

    return {
        "message": "Withdrawal rejected",
        "request": _public_request(result["request"]),
    }


# ======================================================
# WALLET READS
# ======================================================

@router.get("/seller/{seller_id}")
async def get_seller_wallet(
    seller_id: str,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    seller_oid = parse_object_id(seller_id, "seller_id")
    assert_self_or_admin(user, seller_oid, "Not authorized to view this wallet")

    wallet = await db.seller_wallets.find_one({"seller_id": seller_oid})
    if not wallet:
        raise HTTPException(404, "Seller wallet not found")

    transactions = await db.wallet_transactions.find(
        {"wallet_type": WALLET_SELLER, "seller_id": seller_oid}
    ).sort("created_at", -1).limit(50).to_list(50)

    data = serialize_wallet(wallet, _current_month())
    data.pop("transactions", None)

    return {
        "wallet": data,
        "transactions": serialize_docs(transactions),
    }


@router.get("/admin/balance")
async def get_admin_wallet(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    wallet = await get_or_create_admin_wallet(db)
    data = serialize_wallet(wallet, _current_month())
    data.pop("transactions", None)
    return {"wallet": data}


@router.get("/transactions")
async def list_transactions(
    wallet_type: str | None = Query(None),
    seller_id: str | None = Query(None),
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    query = {}
    if wallet_type:
        query["wallet_type"] = wallet_type
    if seller_id:
        query["seller_id"] = parse_object_id(seller_id, "seller_id")
    if status:
        query["status"] = status

    transactions = await (
        db.wallet_transactions.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
    total = await db.wallet_transactions.count_documents(query)

    return {
        "transactions": serialize_docs(transactions),
        "page": page,
        "total": total,
    }


# ======================================================
# STATS
# ======================================================

async def _withdrawal_stats(db, match: dict) -> dict:
    rows = await db.withdrawal_requests.aggregate([
        {"$match": match},
        {"$group": {
            "_id": "$status",
            "count": {"$sum": 1},
            "amount_cents": {"$sum": "$amount_cents"},
        }},
    ]).to_list(None)

    return {
        r["_id"]: {"count": r["count"], "amount_cents": r["amount_cents"]}
        for r in rows
    }


@router.get("/seller-stats/{seller_id}")
async def seller_stats(
    seller_id: str,
    user=Depends(require_role(ROLE_SELLER, ROLE_ADMIN)),
    db=Depends(get_db),
):
    seller_oid = parse_object_id(seller_id, "seller_id")
    assert_self_or_admin(user, seller_oid, "Not authorized to view these stats")

    wallet = await db.seller_wallets.find_one({"seller_id": seller_oid})
    totals = await get_ledger_totals(db, {"wallet_type": WALLET_SELLER, "seller_id": seller_oid})
    orders = await db.orders.count_documents({"items.seller_id": seller_oid})
    withdrawals = await _withdrawal_stats(db, {"seller_id": seller_oid})

    wallet_data = serialize_wallet(wallet, _current_month()) if wallet else None
    if wallet_data:
        wallet_data.pop("transactions", None)

    return {
        "seller_id": seller_id,
        "wallet": wallet_data,
        "ledger": serialize_doc({
            "credits_cents": totals[TX_CREDIT],
            "debits_cents": totals[TX_DEBIT],
        }),
        "orders": orders,
        "withdrawals": {k: serialize_doc(v) for k, v in withdrawals.items()},
    }


@router.get("/admin-stats")
async def admin_stats(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    admin_wallet = await db.admin_wallets.find_one({"_id": ADMIN_WALLET_ID})
    commission = await get_ledger_totals(db, {"wallet_type": WALLET_ADMIN})

    rows = await db.seller_wallets.aggregate([
        {"$group": {
            "_id": None,
            "balance_cents": {"$sum": "$balance_cents"},
            "pending_withdrawals_cents": {"$sum": "$pending_withdrawals_cents"},
            "sellers": {"$sum": 1},
        }},
    ]).to_list(None)
    sellers = rows[0] if rows else {"balance_cents": 0, "pending_withdrawals_cents": 0, "sellers": 0}
    sellers.pop("_id", None)

    withdrawals = await _withdrawal_stats(db, {})
    orders = await db.orders.count_documents({})
    needs_review = await db.orders.count_documents({"needs_review": True})

    wallet_data = serialize_wallet(admin_wallet, _current_month()) if admin_wallet else None
    if wallet_data:
        wallet_data.pop("transactions", None)

    return {
        "admin_wallet": wallet_data,
        "commission_earned": from_cents(commission[TX_CREDIT]),
        "seller_wallets": serialize_doc(sellers),
        "withdrawals": {k: serialize_doc(v) for k, v in withdrawals.items()},
        "orders": orders,
        "orders_needing_review": needs_review,
    }


# ======================================================
# ADMIN ADJUSTMENTS
# ======================================================

@router.post("/admin/seller-adjustment")
async def adjust_seller_wallet(
    payload: SellerWalletAdjustment,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    seller_oid = parse_object_id(payload.seller_id, "seller_id")
    seller = await db.users.find_one({"_id": seller_oid, "role": ROLE_SELLER})
    if not seller:
        raise HTTPException(404, "Seller not found")

    amount_cents = to_cents(payload.amount)

    async def _txn(session):
        tx = WalletTransaction(
            wallet_type=WALLET_SELLER,
            tx_type=payload.type,
            amount_cents=amount_cents,
            description=payload.description,
            seller_id=seller_oid,
            metadata={"kind": "admin_adjustment", "processed_by": str(admin["_id"])},
        )

        if payload.type == TX_CREDIT:
            await credit_seller_wallet(db, seller_oid, tx, session=session, earnings=False)
        else:
            await debit_seller_wallet(db, seller_oid, tx, session=session)

        await log_audit(
            db,
            actor_id=str(admin["_id"]),
            actor_role="admin",
            action="SELLER_WALLET_ADJUSTED",
            metadata={
                "seller_id": str(seller_oid),
                "type": payload.type,
                "amount_cents": amount_cents,
                "transaction_id": str(tx.id),
            },
            session=session,
        )

        wallet = await db.seller_wallets.find_one({"seller_id": seller_oid}, session=session)
        return wallet, tx.to_document()

    wallet, tx_doc = await run_in_transaction(db, _txn)

    data = serialize_wallet(wallet, _current_month())
    data.pop("transactions", None)

    return {
        "message": f"Seller wallet {'credited' if payload.type == TX_CREDIT else 'debited'}",
        "wallet": data,
        "transaction": serialize_doc(tx_doc),
    }


# ======================================================
# RECONCILIATION
# ======================================================

@router.get("/reconcile")
async def reconcile(
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    reports = await reconcile_wallets(db)

    return {
        "wallets": serialize_docs(reports),
        "in_sync": all(r["in_sync"] for r in reports),
    }
