from datetime import datetime

from bson import ObjectId
from fastapi import HTTPException

from config.constants import TX_DEBIT
from models.wallet import CreditTransaction
from utils.money import from_cents


async def apply_credit_change(
    db,
    *,
    user_id: ObjectId,
    tx_type: str,
    amount_cents: int,
    reason: str,
    description: str,
    order_id: ObjectId | None = None,
    session=None,
) -> dict:
    """
    Move a user's store-credit balance and write the audit entry.
    balance_before/after come from the user document read inside the
    session, never from request input.
    """
    if amount_cents <= 0:
        raise HTTPException(400, "Credit amount must be positive")

    user = await db.users.find_one({"_id": user_id}, session=session)
    if not user:
        raise HTTPException(404, "User not found")

    before = int(user.get("credit_balance_cents") or 0)

    if tx_type == TX_DEBIT:
        if before < amount_cents:
            raise HTTPException(
                400,
                f"Insufficient store credit. Available: {from_cents(before):.2f}",
            )
        after = before - amount_cents
        delta = -amount_cents
    else:
        after = before + amount_cents
        delta = amount_cents

    # compare-and-set on the value read above keeps before/after exact
    result = await db.users.update_one(
        {"_id": user_id, "credit_balance_cents": user.get("credit_balance_cents")},
        {"$inc": {"credit_balance_cents": delta}, "$set": {"updated_at": datetime.utcnow()}},
        session=session,
    )
    if result.modified_count == 0:
        raise HTTPException(409, "Store credit changed concurrently, please retry")

    entry = CreditTransaction(
        user_id=user_id,
        tx_type=tx_type,
        amount_cents=amount_cents,
        reason=reason,
        description=description,
        balance_before_cents=before,
        balance_after_cents=after,
        order_id=order_id,
    ).to_document()
    await db.credit_transactions.insert_one(entry, session=session)

    return entry
