from fastapi import APIRouter, Depends, Query

from config.constants import CREDIT_REASON_ADMIN_ADJUSTMENT, ROLE_ADMIN
from database import get_db
from models.wallet import CreditAdjustment
from utils.audit import log_audit
from utils.credit import apply_credit_change
from utils.guards import parse_object_id
from utils.money import from_cents, to_cents
from utils.security import get_current_user, require_role
from utils.serializers import serialize_doc, serialize_docs
from utils.transactions import run_in_transaction


router = APIRouter(
    prefix="/api/credit",
    tags=["Store Credit"]
)


@router.get("/balance")
async def credit_balance(user=Depends(get_current_user)):
    return {
        "user_id": str(user["_id"]),
        "balance": from_cents(user.get("credit_balance_cents")),
    }


@router.get("/transactions")
async def credit_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    query = {"user_id": user["_id"]}
    entries = await (
        db.credit_transactions.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list(limit)
    )
    total = await db.credit_transactions.count_documents(query)

    return {
        "transactions": serialize_docs(entries),
        "page": page,
        "pages": (total + limit - 1) // limit,
        "total": total,
    }


# ======================================================
# ADMIN ADJUSTMENT
# ======================================================

@router.post("/admin/adjust")
async def adjust_credit(
    payload: CreditAdjustment,
    admin=Depends(require_role(ROLE_ADMIN)),
    db=Depends(get_db),
):
    user_oid = parse_object_id(payload.user_id, "user_id")
    amount_cents = to_cents(payload.amount)

    async def _txn(session):
        entry = await apply_credit_change(
            db,
            user_id=user_oid,
            tx_type=payload.type,
            amount_cents=amount_cents,
            reason=CREDIT_REASON_ADMIN_ADJUSTMENT,
            description=payload.description,
            session=session,
        )
        await log_audit(
            db,
            actor_id=str(admin["_id"]),
            actor_role="admin",
            action="STORE_CREDIT_ADJUSTED",
            metadata={
                "user_id": str(user_oid),
                "type": payload.type,
                "amount_cents": amount_cents,
            },
            session=session,
        )
        return entry

    entry = await run_in_transaction(db, _txn)

    return {
        "message": "Store credit updated",
        "transaction": serialize_doc(entry),
        "balance": from_cents(entry["balance_after_cents"]),
    }
