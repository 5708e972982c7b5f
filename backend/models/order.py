from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.product import VariantAttribute


class OrderItemIn(BaseModel):
    product: str
    qty: int = Field(..., gt=0)
    # price and seller always come from the catalog, never the payload
    selected_attributes: List[VariantAttribute] = []


class OrderCreate(BaseModel):
    order_items: List[OrderItemIn] = []
    user: Optional[str] = None
    shipping_address: Dict[str, Any] = {}
    payment_method: str = "card"

    tax_price: Decimal = Field(Decimal("0"), ge=0)
    shipping_price: Decimal = Field(Decimal("0"), ge=0)

    coupon_code: Optional[str] = None
    credit_used: Decimal = Field(Decimal("0"), ge=0)


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    order_id: str
    status: str
