from fastapi import HTTPException
from bson import ObjectId

from config.constants import ROLE_ADMIN

# -------------------------------
# ObjectId Guard
# -------------------------------

def parse_object_id(value, name: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except Exception:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


# -------------------------------
# Ownership Guard
# -------------------------------

def assert_self_or_admin(user: dict, owner_id, detail: str = "Not authorized"):
    if user.get("role") == ROLE_ADMIN:
        return
    if str(user.get("_id")) != str(owner_id):
        raise HTTPException(status_code=403, detail=detail)
