from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class UserInDB(BaseModel):
    name: str
    email: Optional[str] = None
    role: UserRole = UserRole.BUYER

    # sellers can be deactivated without losing their ledger
    is_active: bool = True

    # store credit, integer cents
    credit_balance_cents: int = 0

    created_at: datetime
