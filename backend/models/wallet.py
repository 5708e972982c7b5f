from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import uuid4

from bson import ObjectId
from pydantic import BaseModel, Field

from config.constants import TX_STATUS_COMPLETED


class WalletTransaction:
    """
    Immutable ledger entry. Built once per financial event and inserted,
    never updated afterwards.
    """

    def __init__(
        self,
        wallet_type: str,
        tx_type: str,
        amount_cents: int,
        description: str,
        seller_id: ObjectId | None = None,
        order_id: ObjectId | None = None,
        withdrawal_id: ObjectId | None = None,
        status: str = TX_STATUS_COMPLETED,
        metadata: dict | None = None,
    ):
        if amount_cents < 0:
            raise ValueError("Transaction amount cannot be negative")

        self.id = ObjectId()
        self.wallet_type = wallet_type
        self.seller_id = seller_id
        self.order_id = order_id
        self.withdrawal_id = withdrawal_id
        self.type = tx_type
        self.amount_cents = int(amount_cents)
        self.description = description
        self.status = status
        self.reference_id = f"TXN-{uuid4().hex}"
        self.metadata = metadata or {}
        self.created_at = datetime.utcnow()

    def to_document(self) -> dict:
        return {
            "_id": self.id,
            "wallet_type": self.wallet_type,
            "seller_id": self.seller_id,
            "order_id": self.order_id,
            "withdrawal_id": self.withdrawal_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "status": self.status,
            "reference_id": self.reference_id,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }


class CreditTransaction:
    def __init__(
        self,
        user_id: ObjectId,
        tx_type: str,
        amount_cents: int,
        reason: str,
        description: str,
        balance_before_cents: int,
        balance_after_cents: int,
        order_id: ObjectId | None = None,
    ):
        if amount_cents < 0:
            raise ValueError("Credit amount cannot be negative")

        self.user_id = user_id
        self.order_id = order_id
        self.amount_cents = int(amount_cents)
        self.type = tx_type
        self.reason = reason
        self.description = description
        self.balance_before_cents = int(balance_before_cents)
        self.balance_after_cents = int(balance_after_cents)
        self.created_at = datetime.utcnow()

    def to_document(self) -> dict:
        return {
            "user_id": self.user_id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "reason": self.reason,
            "description": self.description,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "created_at": self.created_at,
        }


# =====================================================
# REQUEST SCHEMAS
# =====================================================

class BankDetails(BaseModel):
    account_holder_name: Optional[str] = None
    account_number: str = Field(..., min_length=4)
    ifsc_code: Optional[str] = None
    bank_name: Optional[str] = None


class WithdrawalCreate(BaseModel):
    seller_id: Optional[str] = None     # admins may file on behalf of a seller
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    bank_details: BankDetails


class WithdrawalReject(BaseModel):
    remarks: Optional[str] = None


class SellerWalletAdjustment(BaseModel):
    seller_id: str
    type: Literal["credit", "debit"]
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1)


class CreditAdjustment(BaseModel):
    user_id: str
    type: Literal["credit", "debit"]
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1)
