from datetime import datetime

from fastapi import HTTPException

from config import env
from config.constants import (
    ROLE_SELLER,
    TX_DEBIT,
    WALLET_SELLER,
    WITHDRAWAL_APPROVED,
    WITHDRAWAL_PENDING,
    WITHDRAWAL_REJECTED,
)
from models.wallet import BankDetails, WalletTransaction
from utils.audit import log_audit
from utils.crypto import decrypt_sensitive_value, protect_bank_details
from utils.guards import parse_object_id
from utils.money import from_cents, to_cents
from utils.transactions import run_in_transaction
from utils.wallet_service import add_wallet_transaction


def _insufficient(available_cents: int) -> HTTPException:
    return HTTPException(400, f"Insufficient balance. Available: {from_cents(available_cents):.2f}")


async def _find_pending_request(db, request_oid, session):
    request = await db.withdrawal_requests.find_one({"_id": request_oid}, session=session)
    if not request:
        raise HTTPException(404, "Withdrawal request not found")
    if request.get("status") != WITHDRAWAL_PENDING:
        raise HTTPException(400, f"Withdrawal request already {request.get('status')}")
    return request


# ======================================================
# SELLER: REQUEST
# ======================================================

async def request_withdrawal(db, seller_id, amount, bank_details: BankDetails) -> dict:
    """
    Reserve funds for a payout. The amount moves from `balance` to
    `pending_withdrawals` on the same wallet until an admin decides.
    """
    amount_cents = to_cents(amount)
    if amount_cents < to_cents(env.MIN_WITHDRAWAL_AMOUNT):
        raise HTTPException(400, f"Minimum withdrawal amount is {env.MIN_WITHDRAWAL_AMOUNT:.2f}")

    seller_oid = parse_object_id(seller_id, "seller_id")
    seller = await db.users.find_one({"_id": seller_oid, "role": ROLE_SELLER})
    if not seller:
        raise HTTPException(404, "Seller not found")

    bank_snapshot = protect_bank_details(bank_details.model_dump())

    async def _txn(session):
        now = datetime.utcnow()
        wallet = await db.seller_wallets.find_one({"seller_id": seller_oid}, session=session)
        if not wallet:
            raise HTTPException(404, "Seller wallet not found")

        available = int(wallet.get("balance_cents") or 0)
        if available < amount_cents:
            raise _insufficient(available)

        result = await db.seller_wallets.update_one(
            {"seller_id": seller_oid, "balance_cents": {"$gte": amount_cents}},
            {
                "$inc": {
                    "balance_cents": -amount_cents,
                    "pending_withdrawals_cents": amount_cents,
                },
                "$set": {"updated_at": now},
            },
            session=session,
        )
        if result.modified_count == 0:
            raise _insufficient(available)

        request = {
            "seller_id": seller_oid,
            "seller_name": seller.get("name"),
            "amount_cents": amount_cents,
            "status": WITHDRAWAL_PENDING,
            "bank_details": bank_snapshot,
            "requested_at": now,
            "processed_at": None,
            "processed_by": None,
            "remarks": None,
            "funds_released": False,
            "transaction_id": None,
            "created_at": now,
            "updated_at": now,
        }
        await db.withdrawal_requests.insert_one(request, session=session)
        return request

    return await run_in_transaction(db, _txn)


# ======================================================
# ADMIN: APPROVE
# ======================================================

async def approve_withdrawal(db, request_id, admin: dict) -> dict:
    request_oid = parse_object_id(request_id, "request_id")

    async def _txn(session):
        now = datetime.utcnow()
        request = await _find_pending_request(db, request_oid, session)
        amount = request["amount_cents"]

        wallet = await db.seller_wallets.find_one({"seller_id": request["seller_id"]}, session=session)
        if not wallet:
            raise HTTPException(404, "Seller wallet not found")

        # re-check against the funds reserved for this request, the available
        # balance already had them taken out at request time
        reserved = int(wallet.get("pending_withdrawals_cents") or 0)
        if reserved < amount:
            raise HTTPException(
                400,
                f"Insufficient reserved balance. Reserved: {from_cents(reserved):.2f}",
            )

        tx = WalletTransaction(
            wallet_type=WALLET_SELLER,
            tx_type=TX_DEBIT,
            amount_cents=amount,
            description=f"Withdrawal payout to {request['bank_details'].get('bank_account_masked')}",
            seller_id=request["seller_id"],
            withdrawal_id=request_oid,
            metadata={
                "kind": "withdrawal",
                "request_id": str(request_oid),
                "processed_by": str(admin["_id"]),
            },
        )

        result = await db.seller_wallets.update_one(
            {"seller_id": request["seller_id"], "pending_withdrawals_cents": {"$gte": amount}},
            {
                "$inc": {"pending_withdrawals_cents": -amount},
                "$set": {"updated_at": now},
                "$push": {"transactions": tx.id},
            },
            session=session,
        )
        if result.modified_count == 0:
            raise HTTPException(409, "Wallet changed concurrently, please retry")

        await add_wallet_transaction(db, tx, session=session)

        result = await db.withdrawal_requests.update_one(
            {"_id": request_oid, "status": WITHDRAWAL_PENDING},
            {"$set": {
                "status": WITHDRAWAL_APPROVED,
                "processed_at": now,
                "processed_by": admin["_id"],
                "transaction_id": tx.id,
                "updated_at": now,
            }},
            session=session,
        )
        if result.modified_count == 0:
            raise HTTPException(409, "Withdrawal request changed concurrently, please retry")

        await log_audit(
            db,
            actor_id=str(admin["_id"]),
            actor_role="admin",
            action="WITHDRAWAL_APPROVED",
            metadata={
                "request_id": str(request_oid),
                "seller_id": str(request["seller_id"]),
                "amount_cents": amount,
            },
            session=session,
        )

        request = await db.withdrawal_requests.find_one({"_id": request_oid}, session=session)
        wallet = await db.seller_wallets.find_one({"seller_id": request["seller_id"]}, session=session)
        return request, wallet

    request, wallet = await run_in_transaction(db, _txn)

    bank = request.get("bank_details") or {}
    payout = {
        "account_holder_name": bank.get("account_holder_name"),
        "bank_name": bank.get("bank_name"),
        "ifsc_code": bank.get("ifsc_code"),
        "account_number": decrypt_sensitive_value(bank.get("bank_account_encrypted")),
        "amount_cents": request["amount_cents"],
    }

    return {"request": request, "wallet": wallet, "payout": payout}


# ======================================================
# ADMIN: REJECT
# ======================================================

async def reject_withdrawal(db, request_id, remarks: str | None, admin: dict) -> dict:
    request_oid = parse_object_id(request_id, "request_id")
    release = env.WITHDRAWAL_REJECT_RELEASES_FUNDS

    async def _txn(session):
        now = datetime.utcnow()
        request = await _find_pending_request(db, request_oid, session)
        amount = request["amount_cents"]

        if release:
            result = await db.seller_wallets.update_one(
                {"seller_id": request["seller_id"], "pending_withdrawals_cents": {"$gte": amount}},
                {
                    "$inc": {"pending_withdrawals_cents": -amount, "balance_cents": amount},
                    "$set": {"updated_at": now},
                },
                session=session,
            )
            if result.modified_count == 0:
                raise HTTPException(409, "Reserved funds for this request are missing from the wallet")

        result = await db.withdrawal_requests.update_one(
            {"_id": request_oid, "status": WITHDRAWAL_PENDING},
            {"$set": {
                "status": WITHDRAWAL_REJECTED,
                "processed_at": now,
                "processed_by": admin["_id"],
                "remarks": remarks,
                "funds_released": release,
                "updated_at": now,
            }},
            session=session,
        )
        if result.modified_count == 0:
            raise HTTPException(409, "Withdrawal request changed concurrently, please retry")

        await log_audit(
            db,
            actor_id=str(admin["_id"]),
            actor_role="admin",
            action="WITHDRAWAL_REJECTED",
            metadata={
                "request_id": str(request_oid),
                "seller_id": str(request["seller_id"]),
                "amount_cents": amount,
                "funds_released": release,
                "remarks": remarks,
            },
            session=session,
        )

        return await db.withdrawal_requests.find_one({"_id": request_oid}, session=session)

    request = await run_in_transaction(db, _txn)
    return {"request": request}
