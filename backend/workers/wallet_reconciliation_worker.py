import asyncio
import logging

from config import env
from config.constants import ADMIN_WALLET_ID, WALLET_ADMIN, WALLET_SELLER
from database import get_db
from utils.wallet_service import get_ledger_balance

logger = logging.getLogger(__name__)


def _stored_total(wallet: dict) -> int:
    # reserved withdrawals are still backed by ledger credits
    return int(wallet.get("balance_cents") or 0) + int(wallet.get("pending_withdrawals_cents") or 0)


async def reconcile_wallets(db) -> list[dict]:
    """
    Compare each wallet's stored balance with the balance derived from its
    completed ledger entries. Returns one report per wallet; nothing is
    corrected automatically.
    """
    reports = []

    wallets = await db.seller_wallets.find({}).to_list(None)
    for wallet in wallets:
        ledger = await get_ledger_balance(
            db, {"wallet_type": WALLET_SELLER, "seller_id": wallet["seller_id"]}
        )
        reports.append({
            "wallet_type": WALLET_SELLER,
            "seller_id": wallet["seller_id"],
            "stored_cents": _stored_total(wallet),
            "ledger_cents": ledger,
        })

    admin_wallet = await db.admin_wallets.find_one({"_id": ADMIN_WALLET_ID})
    if admin_wallet:
        ledger = await get_ledger_balance(db, {"wallet_type": WALLET_ADMIN})
        reports.append({
            "wallet_type": WALLET_ADMIN,
            "seller_id": None,
            "stored_cents": _stored_total(admin_wallet),
            "ledger_cents": ledger,
        })

    for report in reports:
        report["drift_cents"] = report["stored_cents"] - report["ledger_cents"]
        report["in_sync"] = report["drift_cents"] == 0
        if not report["in_sync"]:
            logger.warning(
                "WALLET_DRIFT wallet_type=%s seller=%s stored=%s ledger=%s",
                report["wallet_type"],
                report["seller_id"],
                report["stored_cents"],
                report["ledger_cents"],
            )

    return reports


async def wallet_reconciliation_worker():
    db = get_db()

    while True:
        try:
            await reconcile_wallets(db)
        except Exception:
            logger.exception("WALLET_RECONCILIATION_ERROR")

        await asyncio.sleep(env.RECONCILIATION_INTERVAL_SECONDS)
