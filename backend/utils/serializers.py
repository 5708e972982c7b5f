from bson import ObjectId
from datetime import datetime

from utils.money import from_cents

CENTS_SUFFIX = "_cents"


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: dict) -> dict:
    """
    JSON-safe copy of a Mongo document.
    ObjectIds and datetimes become strings, and every `<name>_cents`
    integer is exposed as `<name>` in currency units.
    """
    if not doc:
        return doc

    out = {}
    for k, v in doc.items():
        if k.endswith(CENTS_SUFFIX) and (v is None or isinstance(v, int)):
            out[k[: -len(CENTS_SUFFIX)]] = from_cents(v) if v is not None else None
        else:
            out[k] = _serialize_value(v)
    return out


def serialize_docs(docs):
    return [serialize_doc(d) for d in docs]


def serialize_order(order: dict) -> dict:
    data = serialize_doc(order)
    data["id"] = data.pop("_id", None)
    return data


def serialize_wallet(wallet: dict, month_key: str) -> dict:
    data = serialize_doc(wallet)
    # monthly counter only counts while it refers to the current month
    if wallet.get("this_month_key") != month_key:
        data["this_month_earnings"] = 0.0
    return data
