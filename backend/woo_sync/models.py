"""
Record types shared by the import pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional

from .errors import UnknownStatusError


# =============================================================================
# Import types & outcomes
# =============================================================================

class ImportType(Enum):
    """Value stored in woo_import_log.import_type."""
    CUSTOMERS = "customers"
    ORDERS = "orders"
    LINE_ITEMS = "line_items"
    FULL = "full"


class RunStatus(Enum):
    """Value stored in woo_import_log.status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Action(Enum):
    """What the reconciler decided to do with one source record."""
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


class WriteOutcome(Enum):
    """How a single target write ended."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNCHANGED = "unchanged"  # statement ran but matched no rows
    FAILED = "failed"


# =============================================================================
# Legacy order status vocabulary
# =============================================================================

WOO_STATUS_PREFIX = "wc-"


class LegacyOrderStatus(Enum):
    """WooCommerce order statuses, stored without the 'wc-' prefix."""
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"
    CHECKOUT_DRAFT = "checkout-draft"
    TRASH = "trash"


# Only completed orders are migrated
COMPLETED_STATUSES = (LegacyOrderStatus.COMPLETED,)


def parse_legacy_status(raw_status: Optional[str]) -> LegacyOrderStatus:
    """
    Map a raw WooCommerce status ('wc-completed') to LegacyOrderStatus.

    Raises:
        UnknownStatusError: If the value is not a known WooCommerce status
    """
    if not raw_status:
        raise UnknownStatusError(raw_status)
    value = raw_status.strip().lower()
    if value.startswith(WOO_STATUS_PREFIX):
        value = value[len(WOO_STATUS_PREFIX):]
    try:
        return LegacyOrderStatus(value)
    except ValueError:
        raise UnknownStatusError(raw_status)


def woo_status_value(status: LegacyOrderStatus) -> str:
    """Raw value as stored in wc_order_stats.status."""
    return f"{WOO_STATUS_PREFIX}{status.value}"


# =============================================================================
# Normalization helpers
# =============================================================================

CENT = Decimal("0.01")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email; empty values become None."""
    if email is None:
        return None
    normalized = str(email).strip().lower()
    return normalized or None


def to_money(value: Any) -> Decimal:
    """Currency amount rounded to cents; missing values become 0.00."""
    if value is None or value == '':
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a currency amount: {value!r}")


def legacy_id(value: Any) -> Optional[int]:
    """Legacy foreign key as int; NULL and 0 both mean 'no reference'."""
    if value is None or value == '':
        return None
    as_int = int(value)
    return as_int if as_int > 0 else None


# =============================================================================
# Source records (read-only, from WooCommerce)
# =============================================================================

@dataclass
class SourceCustomer:
    """Row from wc_customer_lookup."""
    legacy_customer_id: int
    email: Optional[str]
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    registered_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'SourceCustomer':
        return cls(
            legacy_customer_id=int(row['woo_customer_id']),
            email=row.get('email'),
            first_name=row.get('first_name'),
            last_name=row.get('last_name'),
            registered_at=row.get('date_registered'),
        )


@dataclass
class SourceOrder:
    """Row from wc_order_stats."""
    legacy_order_id: int
    legacy_customer_id: Optional[int]
    created_at: Optional[datetime]
    status: str
    subtotal: Any = None
    tax: Any = None
    shipping: Any = None
    total: Any = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'SourceOrder':
        return cls(
            legacy_order_id=int(row['woo_order_id']),
            legacy_customer_id=legacy_id(row.get('woo_customer_id')),
            created_at=row.get('order_date'),
            status=row.get('status'),
            subtotal=row.get('subtotal'),
            tax=row.get('tax'),
            shipping=row.get('shipping'),
            total=row.get('total'),
        )


@dataclass
class SourceLineItem:
    """One order item aggregated from woocommerce_order_items + itemmeta."""
    legacy_order_id: int
    product_name: str
    quantity: Optional[int] = None
    line_total: Any = None
    legacy_product_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'SourceLineItem':
        quantity = row.get('quantity')
        return cls(
            legacy_order_id=int(row['woo_order_id']),
            product_name=row.get('product_name'),
            quantity=int(quantity) if quantity is not None else None,
            line_total=row.get('line_total'),
            legacy_product_id=legacy_id(row.get('woo_product_id')),
        )


# =============================================================================
# Target lookups & write results
# =============================================================================

@dataclass
class ExistingCustomer:
    """Target customer matched by email."""
    id: Any
    legacy_customer_id: Optional[int]


@dataclass
class WriteIntent:
    """Reconciler decision for one source record."""
    action: Action
    reason: str = ""
    existing: Optional[ExistingCustomer] = None


@dataclass
class WriteResult:
    """Result of one insert/update against the target store."""
    outcome: WriteOutcome
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome == WriteOutcome.APPLIED
