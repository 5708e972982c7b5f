import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)

RESERVE = "reserve"
RESTORE = "restore"


def normalize_attributes(attributes) -> tuple:
    """
    Order-independent key for a variant attribute set.
    Accepts dicts or pydantic models; names compare case-insensitively.
    """
    pairs = set()
    for attr in attributes or []:
        if hasattr(attr, "model_dump"):
            attr = attr.model_dump()
        name = str(attr.get("name", "")).strip().lower()
        value = str(attr.get("value", "")).strip()
        pairs.add((name, value))
    return tuple(sorted(pairs))


def is_variable_product(product: dict) -> bool:
    return bool(product.get("variants"))


def find_variant_index(product: dict, attributes) -> int | None:
    wanted = normalize_attributes(attributes)
    for idx, variant in enumerate(product.get("variants") or []):
        if normalize_attributes(variant.get("attributes")) == wanted:
            return idx
    return None


async def adjust_stock(db, product: dict, item: dict, direction: str, session=None) -> bool:
    """
    Reserve (decrement) or restore (increment) stock for one order line.

    Returns True when a counter was changed. A variable product whose
    variants do not match the line's selected attributes is left untouched
    and reported; that mismatch means cart and catalog disagree.
    Reserving never lets a counter go below zero.
    """
    if direction not in (RESERVE, RESTORE):
        raise ValueError(f"Unknown stock direction: {direction}")

    qty = int(item["qty"])
    delta = -qty if direction == RESERVE else qty

    if is_variable_product(product):
        idx = find_variant_index(product, item.get("selected_attributes"))
        if idx is None:
            logger.warning(
                "VARIANT_NOT_FOUND product=%s attributes=%s direction=%s",
                product.get("_id"),
                item.get("selected_attributes"),
                direction,
            )
            return False
        field = f"variants.{idx}.stock"
    else:
        field = "stock"

    query = {"_id": product["_id"]}
    if direction == RESERVE:
        query[field] = {"$gte": qty}

    result = await db.products.update_one(query, {"$inc": {field: delta}}, session=session)

    if result.modified_count == 0:
        if direction == RESERVE:
            raise HTTPException(400, f"Out of stock: {product.get('name') or product['_id']}")
        raise HTTPException(404, "Product not found")

    return True
