from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class VariantAttribute(BaseModel):
    name: str = Field(..., min_length=1)    # e.g. "Color", "Size"
    value: str = Field(..., min_length=1)   # e.g. "Red", "M"


class ProductVariant(BaseModel):
    attributes: List[VariantAttribute]
    sku: Optional[str] = None

    price_cents: int = Field(..., gt=0)
    stock: int = 0

    is_active: bool = True


class ProductInDB(BaseModel):
    """
    Subset of the catalog document the settlement core reads.
    A product with variants keeps stock per variant; otherwise `stock`
    is the single counter.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    seller_id: ObjectId

    price_cents: int = Field(..., gt=0)
    stock: int = 0

    variants: List[ProductVariant] = []
