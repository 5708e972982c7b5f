# backend/config/constants.py
from decimal import Decimal

# -----------------------------
# COMMISSION
# -----------------------------

COMMISSION_RATE = Decimal("0.02")      # platform cut per line item

# -----------------------------
# ROLES
# -----------------------------

ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"
ROLE_ADMIN = "admin"

# -----------------------------
# ORDERS
# -----------------------------

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_RETURNED = "returned"
ORDER_STATUS_REFUND_REQUESTED = "refund_requested"

ORDER_STATUSES = {
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_RETURNED,
    ORDER_STATUS_REFUND_REQUESTED,
}

# statuses that trigger refund-to-credit + restock
REFUND_STATUSES = {ORDER_STATUS_CANCELLED, ORDER_STATUS_RETURNED}

# -----------------------------
# WALLETS
# -----------------------------

WALLET_SELLER = "Seller"
WALLET_ADMIN = "Admin"

ADMIN_WALLET_ID = "platform"           # single platform-wide document

TX_CREDIT = "credit"
TX_DEBIT = "debit"

TX_STATUS_COMPLETED = "completed"
TX_STATUS_PENDING = "pending"
TX_STATUS_FAILED = "failed"

# -----------------------------
# WITHDRAWALS
# -----------------------------

WITHDRAWAL_PENDING = "pending"
WITHDRAWAL_APPROVED = "approved"
WITHDRAWAL_REJECTED = "rejected"
WITHDRAWAL_COMPLETED = "completed"

# -----------------------------
# STORE CREDIT
# -----------------------------

CREDIT_REASON_ORDER_CANCELLED = "order_cancelled"
CREDIT_REASON_ORDER_RETURNED = "order_returned"
CREDIT_REASON_ORDER_PAYMENT = "order_payment"
CREDIT_REASON_ADMIN_ADJUSTMENT = "admin_adjustment"
