from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure


def _normalize_key_pairs(keys):
    return [(k, v) for k, v in keys]


async def _create_index_safe(collection, keys, **kwargs):
    """
    Create index safely.
    If Mongo reports IndexOptionsConflict/IndexKeySpecsConflict for same key pattern,
    drop the conflicting index and recreate with desired options.
    """
    desired_key = _normalize_key_pairs(keys)
    desired_name = kwargs.get("name")
    try:
        await collection.create_index(keys, **kwargs)
        return
    except OperationFailure as e:
        if getattr(e, "code", None) not in {85, 86}:
            raise

        conflicting_names = []
        async for idx in collection.list_indexes():
            idx_key = _normalize_key_pairs(list(idx.get("key", {}).items()))
            if idx_key == desired_key:
                idx_name = idx.get("name")
                if idx_name and idx_name != desired_name:
                    conflicting_names.append(idx_name)

        for idx_name in conflicting_names:
            await collection.drop_index(idx_name)

        await collection.create_index(keys, **kwargs)


async def ensure_indexes(db):
    # Users
    await _create_index_safe(
        db.users,
        [("role", ASCENDING), ("is_active", ASCENDING)],
        name="users_role_active_idx",
    )

    # Orders
    await _create_index_safe(
        db.orders,
        [("order_number", ASCENDING)],
        name="orders_order_number_unique",
        unique=True,
    )
    await _create_index_safe(
        db.orders,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_user_created_at_idx",
    )
    await _create_index_safe(
        db.orders,
        [("items.seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="orders_item_seller_created_at_idx",
    )
    await _create_index_safe(
        db.order_timeline,
        [("order_id", ASCENDING), ("created_at", ASCENDING)],
        name="order_timeline_order_created_at_idx",
    )

    # Coupons
    await _create_index_safe(
        db.coupons,
        [("code", ASCENDING)],
        name="coupons_code_unique",
        unique=True,
    )

    # Notifications
    await _create_index_safe(
        db.notifications,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="notifications_user_created_at_idx",
    )

    # Wallets
    await _create_index_safe(
        db.seller_wallets,
        [("seller_id", ASCENDING)],
        name="seller_wallets_seller_unique",
        unique=True,
    )

    # Wallet ledger
    await _create_index_safe(
        db.wallet_transactions,
        [("seller_id", ASCENDING), ("created_at", DESCENDING)],
        name="wallet_transactions_seller_created_at_idx",
    )
    await _create_index_safe(
        db.wallet_transactions,
        [("wallet_type", ASCENDING), ("type", ASCENDING)],
        name="wallet_transactions_wallet_type_idx",
    )
    await _create_index_safe(
        db.wallet_transactions,
        [("reference_id", ASCENDING)],
        name="wallet_transactions_reference_unique",
        unique=True,
    )

    # Withdrawal requests
    await _create_index_safe(
        db.withdrawal_requests,
        [("status", ASCENDING), ("requested_at", DESCENDING)],
        name="withdrawal_requests_status_requested_at_idx",
    )
    await _create_index_safe(
        db.withdrawal_requests,
        [("seller_id", ASCENDING), ("requested_at", DESCENDING)],
        name="withdrawal_requests_seller_requested_at_idx",
    )

    # Store credit ledger
    await _create_index_safe(
        db.credit_transactions,
        [("user_id", ASCENDING), ("created_at", DESCENDING)],
        name="credit_transactions_user_created_at_idx",
    )
