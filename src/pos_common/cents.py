"""Integer arithmetic utilities for cents-based ledger amounts.

All sales, payouts, commissions, balances and movement amounts use int (cents).
No float, no Decimal: repeated recomputation must never drift by a cent.
"""

from config.settings import settings


def cents_to_display(cents: int, symbol: str | None = None) -> str:
    """Convert cents to display string: 650000 -> '₡6,500.00', -1200 -> '-₡12.00'."""
    sym = settings.CURRENCY_SYMBOL if symbol is None else symbol
    if cents < 0:
        abs_cents = -cents
        return f"-{sym}{abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"{sym}{cents // 100:,}.{cents % 100:02d}"


def is_zero_balance(cents: int, tolerance: int | None = None) -> bool:
    """True when |cents| is strictly below the settlement tolerance (ε)."""
    eps = settings.SETTLEMENT_TOLERANCE_CENTS if tolerance is None else tolerance
    return abs(cents) < eps

