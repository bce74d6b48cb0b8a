# Overview: Service-layer operations for the admin dashboard and inventory valuation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ricemart.extensions import db
from ricemart.models import Order, Product, StockEntry, User
from ricemart.money import money_str, to_money
from ricemart.services.catalog_service import get_stock_totals, stock_total_expr
from ricemart.services.lifecycle_service import ORDER_STATUSES
from ricemart.time_utils import to_utc_z


RECENT_ORDER_LIMIT = 5
LOW_STOCK_LIMIT = 20


def _orders_by_status() -> dict[str, int]:
    rows = db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    counts = {status: 0 for status in ORDER_STATUSES}
    counts.update({status: int(count) for status, count in rows})
    return counts


def _low_stock_products(threshold: int) -> list[dict]:
    # Backorder products are excluded
    stock = stock_total_expr()
    rows = (
        db.session.query(Product, stock.label("total_stock"))
        .filter(Product.disabled.is_(False), Product.allow_sell_without_stock.is_(False))
        .filter(stock < threshold)
        .order_by(stock.asc(), Product.id.asc())
        .limit(LOW_STOCK_LIMIT)
        .all()
    )
    return [
        {"id": p.id, "sku": p.sku, "name": p.name_en, "total_stock": int(total or 0)}
        for p, total in rows
    ]


def dashboard_summary() -> dict:
    """
    Headline numbers for the admin home page.

    revenue counts DELIVERED orders only; returned/refunded orders have
    left DELIVERED and drop out automatically.
    """
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)

    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.status == "DELIVERED")
        .scalar()
    )
    pending_reviews = (
        db.session.query(func.count(Order.id))
        .filter(
            Order.payment_type == "ONLINE_TRANSFER",
            Order.status == "PENDING",
            Order.payment_verified.is_(False),
            (Order.transaction_id.isnot(None)) | (Order.payment_screenshot.isnot(None)),
        )
        .scalar()
    )
    recent = (
        db.session.query(Order)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDER_LIMIT)
        .all()
    )

    return {
        "total_customers": db.session.query(func.count(User.id)).filter(User.role == "customer").scalar(),
        "active_products": db.session.query(func.count(Product.id)).filter(Product.disabled.is_(False)).scalar(),
        "total_orders": db.session.query(func.count(Order.id)).scalar(),
        "total_revenue": money_str(revenue or 0),
        "pending_payment_reviews": int(pending_reviews or 0),
        "orders_by_status": _orders_by_status(),
        "recent_orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "customer_name": o.user.name if o.user else None,
                "status": o.status,
                "payment_type": o.payment_type,
                "total_amount": money_str(o.total_amount),
                "created_at": to_utc_z(o.created_at),
            }
            for o in recent
        ],
        "low_stock_threshold": threshold,
        "low_stock_products": _low_stock_products(threshold),
    }


def inventory_summary() -> list[dict]:
    """
    Per-product valuation for active products.

    average_cost is the quantity-weighted purchase price of admin receipts
    (positive entries not tied to an order). total_value prices the stock
    on hand at that cost; negative on-hand counts are valued at zero.
    """
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    products = (
        db.session.query(Product)
        .filter(Product.disabled.is_(False))
        .order_by(Product.name_en.asc(), Product.id.asc())
        .all()
    )
    totals = get_stock_totals([p.id for p in products])

    receipt_rows = (
        db.session.query(
            StockEntry.product_id,
            func.sum(StockEntry.quantity),
            func.sum(StockEntry.quantity * StockEntry.purchase_price),
        )
        .filter(StockEntry.quantity > 0, StockEntry.order_id.is_(None))
        .group_by(StockEntry.product_id)
        .all()
    )
    receipts = {pid: (int(qty or 0), to_money(cost or 0)) for pid, qty, cost in receipt_rows}

    summary = []
    for product in products:
        current_stock = totals.get(product.id, 0)
        received_qty, received_cost = receipts.get(product.id, (0, to_money(0)))
        average_cost = to_money(received_cost / received_qty) if received_qty else to_money(0)
        summary.append({
            "product_id": product.id,
            "product_name": product.name_en,
            "product_sku": product.sku,
            "current_stock": current_stock,
            "average_cost": money_str(average_cost),
            "total_value": money_str(average_cost * max(current_stock, 0)),
            "sale_price": money_str(product.price),
            "allow_sell_without_stock": product.allow_sell_without_stock,
            "low_stock": current_stock < threshold,
            "out_of_stock": current_stock <= 0,
            "last_updated": to_utc_z(product.updated_at),
        })
    return summary
