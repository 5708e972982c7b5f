from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

from config.constants import ADMIN_WALLET_ID, TX_CREDIT, TX_DEBIT, TX_STATUS_COMPLETED
from models.wallet import WalletTransaction
from utils.money import from_cents


def month_key(when: datetime) -> str:
    return when.strftime("%Y-%m")


def _wallet_defaults(now: datetime) -> dict:
    return {
        "balance_cents": 0,
        "total_earnings_cents": 0,
        "this_month_earnings_cents": 0,
        "this_month_key": None,
        "pending_withdrawals_cents": 0,
        "created_at": now,
    }


# ==============================
# Core: Append-only ledger write
# ==============================

async def add_wallet_transaction(db, tx: WalletTransaction, session=None) -> ObjectId:
    doc = tx.to_document()
    await db.wallet_transactions.insert_one(doc, session=session)
    return doc["_id"]


# ==============================
# Wallet lookups (lazy creation)
# ==============================

async def get_or_create_admin_wallet(db, session=None) -> dict:
    # fixed _id doubles as the uniqueness constraint for the singleton
    now = datetime.utcnow()
    await db.admin_wallets.update_one(
        {"_id": ADMIN_WALLET_ID},
        {"$setOnInsert": {**_wallet_defaults(now), "transactions": [], "updated_at": now}},
        upsert=True,
        session=session,
    )
    return await db.admin_wallets.find_one({"_id": ADMIN_WALLET_ID}, session=session)


# ==============================
# Credits (earnings)
# ==============================

async def _credit_wallet(collection, query: dict, tx: WalletTransaction, paid_at, session, earnings=True):
    """
    Increment balance and lifetime earnings, and the monthly counter when
    the payment falls in the current calendar month. A counter left over
    from a previous month is restarted rather than incremented.
    Non-sale credits (`earnings=False`) only move the balance.
    """
    now = datetime.utcnow()
    current = month_key(now)
    amount = tx.amount_cents

    inc = {"balance_cents": amount}
    set_fields = {"updated_at": now}

    if earnings:
        inc["total_earnings_cents"] = amount

    if earnings and paid_at is not None and month_key(paid_at) == current:
        wallet = await collection.find_one(query, session=session)
        if wallet and wallet.get("this_month_key") == current:
            inc["this_month_earnings_cents"] = amount
        else:
            set_fields["this_month_earnings_cents"] = amount
            set_fields["this_month_key"] = current

    on_insert = {
        k: v for k, v in _wallet_defaults(now).items()
        if k not in inc and k not in set_fields
    }

    await collection.update_one(
        query,
        {
            "$inc": inc,
            "$set": set_fields,
            "$setOnInsert": on_insert,
            "$push": {"transactions": tx.id},
        },
        upsert=True,
        session=session,
    )


async def credit_seller_wallet(
    db, seller_id: ObjectId, tx: WalletTransaction, paid_at=None, session=None, earnings=True
):
    tx_id = await add_wallet_transaction(db, tx, session=session)
    await _credit_wallet(db.seller_wallets, {"seller_id": seller_id}, tx, paid_at, session, earnings)
    return tx_id


async def credit_admin_wallet(db, tx: WalletTransaction, paid_at=None, session=None):
    tx_id = await add_wallet_transaction(db, tx, session=session)
    await _credit_wallet(db.admin_wallets, {"_id": ADMIN_WALLET_ID}, tx, paid_at, session)
    return tx_id


# ==============================
# Debits
# ==============================

async def debit_seller_wallet(db, seller_id: ObjectId, tx: WalletTransaction, session=None):
    """
    Debit available balance. Conditional on the balance covering the amount,
    so a concurrent debit can never push it below zero.
    """
    wallet = await db.seller_wallets.find_one({"seller_id": seller_id}, session=session)
    if not wallet:
        raise HTTPException(404, "Seller wallet not found")

    result = await db.seller_wallets.update_one(
        {"seller_id": seller_id, "balance_cents": {"$gte": tx.amount_cents}},
        {
            "$inc": {"balance_cents": -tx.amount_cents},
            "$set": {"updated_at": datetime.utcnow()},
            "$push": {"transactions": tx.id},
        },
        session=session,
    )
    if result.modified_count == 0:
        raise HTTPException(
            400,
            f"Insufficient balance. Available: {from_cents(wallet.get('balance_cents')):.2f}",
        )

    return await add_wallet_transaction(db, tx, session=session)


# ==============================
# Ledger-derived balances
# ==============================

async def get_ledger_totals(db, match: dict) -> dict:
    pipeline = [
        {"$match": {**match, "status": TX_STATUS_COMPLETED}},
        {"$group": {
            "_id": "$type",
            "amount": {"$sum": "$amount_cents"},
        }},
    ]

    rows = await db.wallet_transactions.aggregate(pipeline).to_list(None)
    summary = {r["_id"]: r["amount"] for r in rows}
    return {
        TX_CREDIT: summary.get(TX_CREDIT, 0),
        TX_DEBIT: summary.get(TX_DEBIT, 0),
    }


async def get_ledger_balance(db, match: dict) -> int:
    totals = await get_ledger_totals(db, match)
    return totals[TX_CREDIT] - totals[TX_DEBIT]
