"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class Dimension(str, Enum):
    """Organizational level a statement is kept for: bank → window → seller."""
    BANK = "BANK"
    WINDOW = "WINDOW"
    SELLER = "SELLER"


class SaleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    EVALUATED = "EVALUATED"
    PAID = "PAID"


# Statuses whose sales count toward a statement
COUNTED_SALE_STATUSES: frozenset[str] = frozenset(
    {SaleStatus.ACTIVE.value, SaleStatus.EVALUATED.value, SaleStatus.PAID.value}
)


class CommissionBeneficiary(str, Enum):
    """Beneficiary tag frozen on each play's commission snapshot."""
    SELLER = "SELLER"
    WINDOW = "WINDOW"
    BANK = "BANK"


class CommissionSource(str, Enum):
    """Where a window-side commission total came from."""
    SNAPSHOT = "SNAPSHOT"
    DERIVED_FALLBACK = "DERIVED_FALLBACK"


class MovementKind(str, Enum):
    PAYMENT = "PAYMENT"        # adds to remaining balance
    COLLECTION = "COLLECTION"  # subtracts from remaining balance


class PaymentMethod(str, Enum):
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"
    OTHER = "OTHER"


class Role(str, Enum):
    ADMIN = "ADMIN"
    BANK = "BANK"
    WINDOW = "WINDOW"
    SELLER = "SELLER"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BreakdownLineKind(str, Enum):
    OPENING_BALANCE = "OPENING_BALANCE"
    DRAW = "DRAW"
    MOVEMENT = "MOVEMENT"
