"""Statement formulas. Pure functions over int cents.

    balance   = sales - payouts - commission(dimension)
    remaining = balance - collected + paid
    settled   = tickets > 0 and |remaining| < eps and (paid > 0 or collected > 0)
    can_edit  = not settled
"""

from dataclasses import replace

from src.pos_common.cents import is_zero_balance
from src.pos_common.enums import Dimension
from src.pos_sales.domain.models import DayAggregate
from src.pos_statement.domain.models import StatementAggregate


def commission_for(dimension: Dimension, seller_commission: int, window_commission: int) -> int:
    """Seller statements net out the seller's commission, all others the window's."""
    if dimension is Dimension.SELLER:
        return seller_commission
    return window_commission


def compute_balance(
    dimension: Dimension,
    sales: int,
    payouts: int,
    seller_commission: int,
    window_commission: int,
) -> int:
    return sales - payouts - commission_for(dimension, seller_commission, window_commission)


def compute_remaining(balance: int, paid: int, collected: int) -> int:
    return balance - collected + paid


def compute_settled(ticket_count: int, remaining: int, paid: int, collected: int) -> bool:
    if ticket_count <= 0:
        return False
    return is_zero_balance(remaining) and (paid > 0 or collected > 0)


def with_sales(stmt: StatementAggregate, agg: DayAggregate) -> StatementAggregate:
    """Copy of ``stmt`` carrying the sales-side totals of ``agg``; ledger fields re-derived."""
    updated = replace(
        stmt,
        total_sales=agg.sales,
        total_payouts=agg.payouts,
        seller_commission=agg.seller_commission,
        window_commission=agg.window_commission,
        ticket_count=agg.ticket_count,
        commission_source=agg.commission_source,
    )
    return with_ledger(updated, stmt.total_paid, stmt.total_collected)


def with_ledger(stmt: StatementAggregate, paid: int, collected: int) -> StatementAggregate:
    """Copy of ``stmt`` with movement totals applied and every derived field recomputed."""
    balance = compute_balance(
        stmt.dimension,
        stmt.total_sales,
        stmt.total_payouts,
        stmt.seller_commission,
        stmt.window_commission,
    )
    remaining = compute_remaining(balance, paid, collected)
    settled = compute_settled(stmt.ticket_count, remaining, paid, collected)
    return replace(
        stmt,
        balance=balance,
        total_paid=paid,
        total_collected=collected,
        remaining_balance=remaining,
        is_settled=settled,
        can_edit=not settled,
    )


def totals_changed(a: StatementAggregate, b: StatementAggregate) -> bool:
    """True when any persisted total differs between two versions of a statement."""
    return (
        a.total_sales != b.total_sales
        or a.total_payouts != b.total_payouts
        or a.seller_commission != b.seller_commission
        or a.window_commission != b.window_commission
        or a.balance != b.balance
        or a.total_paid != b.total_paid
        or a.total_collected != b.total_collected
        or a.remaining_balance != b.remaining_balance
        or a.ticket_count != b.ticket_count
        or a.is_settled != b.is_settled
        or a.can_edit != b.can_edit
        or a.commission_source is not b.commission_source
    )
