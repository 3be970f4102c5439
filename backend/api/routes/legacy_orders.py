"""
Legacy order routes.

Read-only views over the WooCommerce orders copied into legacy_orders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ..services.database import db_pool


router = APIRouter(prefix="/api/legacy-orders", tags=["legacy-orders"])


class LegacyOrder(BaseModel):
    """Legacy order summary."""
    id: str
    woo_order_id: int
    customer_id: Optional[str] = None
    woo_customer_id: Optional[int] = None
    order_date: Optional[datetime] = None
    status: Optional[str] = None
    subtotal: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    shipping: Optional[Decimal] = None
    total: Optional[Decimal] = None
    payment_method: Optional[str] = None
    billing_email: Optional[str] = None
    billing_first_name: Optional[str] = None
    billing_last_name: Optional[str] = None
    created_at: Optional[datetime] = None


class LegacyOrderItem(BaseModel):
    id: str
    woo_product_id: Optional[int] = None
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    line_total: Optional[Decimal] = None


class LinkedCustomer(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LegacyOrderDetail(LegacyOrder):
    """Legacy order with its line items and linked customer."""
    items: List[LegacyOrderItem] = []
    customer: Optional[LinkedCustomer] = None


class LegacyOrderListResponse(BaseModel):
    orders: List[LegacyOrder]
    total: int
    limit: int
    offset: int


ORDER_COLUMNS = """
    id, woo_order_id, customer_id, woo_customer_id, order_date, status,
    subtotal, tax, shipping, total, payment_method,
    billing_email, billing_first_name, billing_last_name, created_at
"""


def stringify_ids(row: Dict[str, Any], keys=("id", "customer_id", "product_id")) -> Dict[str, Any]:
    """Convert UUID columns to strings."""
    result = dict(row)
    for key in keys:
        if result.get(key) is not None:
            result[key] = str(result[key])
    return result


@router.get("/", response_model=LegacyOrderListResponse)
def list_legacy_orders(
    search: Optional[str] = Query(None, description="Billing email, billing name, or WooCommerce order id"),
    limit: int = Query(20, ge=1, le=100, description="Number of results to return"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
):
    """
    Search legacy orders, newest order date first.

    Returns:
        List of legacy orders with pagination info
    """
    where_clause = ""
    params: List[Any] = []

    if search and search.strip():
        term = search.strip()
        pattern = f"%{term}%"
        conditions = [
            "billing_email ILIKE %s",
            "billing_first_name ILIKE %s",
            "billing_last_name ILIKE %s",
        ]
        params.extend([pattern, pattern, pattern])
        if term.isdigit():
            conditions.append("woo_order_id = %s")
            params.append(int(term))
        where_clause = f"WHERE {' OR '.join(conditions)}"

    with db_pool.get_cursor() as cursor:
        cursor.execute(f"SELECT COUNT(*) as total FROM legacy_orders {where_clause}", params)
        total = cursor.fetchone()["total"]

        cursor.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM legacy_orders
            {where_clause}
            ORDER BY order_date DESC
            LIMIT %s OFFSET %s
            """,
            params + [limit, offset],
        )
        rows = cursor.fetchall()

    return LegacyOrderListResponse(
        orders=[LegacyOrder(**stringify_ids(row)) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=LegacyOrderDetail)
def get_legacy_order(order_id: str):
    """
    Get a legacy order with its line items and linked customer.

    Raises:
        HTTPException: If the order is not found
    """
    with db_pool.get_cursor() as cursor:
        cursor.execute(
            f"SELECT {ORDER_COLUMNS} FROM legacy_orders WHERE id::text = %s",
            (order_id,)
        )
        order = cursor.fetchone()

        if not order:
            raise HTTPException(
                status_code=404,
                detail=f"Legacy order {order_id} not found"
            )

        cursor.execute(
            """
            SELECT id, woo_product_id, product_id, product_name, quantity, line_total
            FROM legacy_order_items
            WHERE legacy_order_id = %s
            ORDER BY product_name
            """,
            (order["id"],)
        )
        items = cursor.fetchall()

        customer = None
        if order["customer_id"] is not None:
            cursor.execute(
                "SELECT id, email, first_name, last_name FROM customers WHERE id = %s",
                (order["customer_id"],)
            )
            customer = cursor.fetchone()

    return LegacyOrderDetail(
        **stringify_ids(order),
        items=[LegacyOrderItem(**stringify_ids(item)) for item in items],
        customer=LinkedCustomer(**stringify_ids(customer)) if customer else None,
    )
