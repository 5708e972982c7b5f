from decimal import Decimal, ROUND_HALF_UP

from config.constants import COMMISSION_RATE

CENT = Decimal("0.01")


def round2(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount) -> int:
    """
    Convert a decimal amount (str, int, float or Decimal) to integer cents.
    Floats go through their shortest repr so 0.1 stays 10 cents.
    """
    return int(round2(amount) * 100)


def from_cents(cents: int | None) -> float:
    return float(Decimal(int(cents or 0)) / 100)


def split_commission(price_cents: int, qty: int, rate: Decimal = COMMISSION_RATE) -> tuple[int, int, int]:
    """
    Returns (item_total, admin_commission, seller_earning) in cents.
    Commission is rounded half-up to the cent; the seller gets the remainder,
    so the two parts always add back to the item total.
    """
    item_total = int(price_cents) * int(qty)
    commission = int((Decimal(item_total) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return item_total, commission, item_total - commission
