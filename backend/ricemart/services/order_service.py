# Overview: Service-layer operations for order checkout and order reads.

"""
Order Creation

CHECKOUT RULES:
1. Every product must exist, be enabled, not be flagged out of stock, and
   (without backorder) have ledger stock covering the requested quantity.
2. unit_price is copied from the product at checkout; later price edits
   never touch existing orders. total = SUM(unit_price * quantity).
3. Order, items and the creation event are committed together.
4. Stock is NOT deducted here. Deduction happens on PROCESSING
   (see lifecycle_service) so unpaid orders do not hold inventory.
   Two orders racing for the last unit can both be placed.

INITIAL STATUS:
- ONLINE_TRANSFER: PENDING (awaiting proof until a transaction id or
  screenshot is attached)
- COD: COD_INITIAL_STATUS config, PENDING by default. PROCESSING runs the
  regular PENDING -> PROCESSING transition inside the same transaction.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import CompanyPaymentAccount, Order, OrderItem, PaymentMethod, Product, User
from ..models.orders import ORDER_PAYMENT_TYPES
from ricemart.money import to_money
from ricemart.services import audit_service, lifecycle_service, upload_service
from ricemart.services.catalog_service import ProductUnavailableError, ensure_sellable, get_stock_totals
from ricemart.services.concurrency import run_in_transaction
from ricemart.time_utils import parse_iso_datetime
from ricemart.validation import NotFoundError, ValidationError, coerce_int


__all__ = [
    "ProductUnavailableError",
    "create_order",
    "get_order",
    "list_user_orders",
    "list_orders_admin",
]

MAX_ITEMS_PER_ORDER = 50
MAX_QUANTITY_PER_ITEM = 10_000

ADDRESS_REQUIRED = ("name", "phone", "address")
ADDRESS_OPTIONAL = ("city", "state", "postal_code")


def _parse_items(raw) -> list[tuple[int, int]]:
    """Validate items and merge duplicate product ids. Order of first appearance is kept."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Order must contain at least one item", [{"field": "items", "message": "is required"}])
    if len(raw) > MAX_ITEMS_PER_ORDER:
        raise ValidationError(f"Order cannot contain more than {MAX_ITEMS_PER_ORDER} items")

    merged: dict[int, int] = {}
    details = []
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            details.append({"field": f"items[{idx}]", "message": "must be an object"})
            continue
        try:
            product_id = coerce_int(item.get("product_id"), f"items[{idx}].product_id")
            quantity = coerce_int(item.get("quantity"), f"items[{idx}].quantity")
        except ValidationError as exc:
            details.extend(exc.details)
            continue
        if quantity <= 0 or quantity > MAX_QUANTITY_PER_ITEM:
            details.append({"field": f"items[{idx}].quantity", "message": f"must be between 1 and {MAX_QUANTITY_PER_ITEM}"})
            continue
        merged[product_id] = merged.get(product_id, 0) + quantity

    if details:
        raise ValidationError("Validation failed", details)
    return list(merged.items())


def _parse_shipping_address(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("shipping_address is required", [{"field": "shipping_address", "message": "is required"}])

    address = {}
    details = []
    for key in ADDRESS_REQUIRED:
        value = str(raw.get(key) or "").strip()
        if not value:
            details.append({"field": f"shipping_address.{key}", "message": "is required"})
        elif len(value) > 255:
            details.append({"field": f"shipping_address.{key}", "message": "exceeds max length 255"})
        address[key] = value
    for key in ADDRESS_OPTIONAL:
        value = str(raw.get(key) or "").strip()
        address[key] = value or None

    if details:
        raise ValidationError("Validation failed", details)
    return address


def _optional_str(payload: dict, key: str, max_len: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_len:
        raise ValidationError(f"{key} exceeds max length {max_len}", [{"field": key, "message": f"exceeds max length {max_len}"}])
    return value or None


def _resolve_payment_method(user: User, payment_method_id) -> PaymentMethod | None:
    if payment_method_id in (None, ""):
        return None
    method_id = coerce_int(payment_method_id, "payment_method_id")
    method = db.session.get(PaymentMethod, method_id)
    if method is None or method.user_id != user.id or not method.is_active:
        raise ValidationError("Payment method not found", [{"field": "payment_method_id", "message": "is invalid"}])
    return method


def _resolve_company_account(company_account_id, *, required: bool) -> CompanyPaymentAccount | None:
    if company_account_id in (None, ""):
        if required:
            raise ValidationError("company_account_id is required", [{"field": "company_account_id", "message": "is required"}])
        return None
    account_id = coerce_int(company_account_id, "company_account_id")
    account = db.session.get(CompanyPaymentAccount, account_id)
    if account is None or not account.is_active:
        raise ValidationError("Company payment account is not available", [{"field": "company_account_id", "message": "is invalid"}])
    return account


def format_order_number(order_id: int) -> str:
    return f"ORD-{order_id:06d}"


def create_order(
    user: User,
    payload: dict,
    *,
    require_company_account: bool = False,
    screenshot_file=None,
) -> Order:
    """
    Place an order for `user`.

    payload keys: items [{product_id, quantity}], shipping_address,
    payment_type (COD | ONLINE_TRANSFER), payment_method_id,
    company_account_id, transaction_id, payment_screenshot,
    customer_account_name, customer_account_no, notes.

    Raises:
        ValidationError: malformed input or bad payment references
        ProductUnavailableError: any item cannot be sold
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payment_type = str(payload.get("payment_type") or "").strip().upper()
    if payment_type not in ORDER_PAYMENT_TYPES:
        raise ValidationError(
            f"payment_type must be one of: {', '.join(ORDER_PAYMENT_TYPES)}",
            [{"field": "payment_type", "message": "is invalid"}],
        )

    items = _parse_items(payload.get("items"))
    address = _parse_shipping_address(payload.get("shipping_address"))
    notes = _optional_str(payload, "notes", 500)

    transfer = payment_type == "ONLINE_TRANSFER"
    transaction_id = _optional_str(payload, "transaction_id", 100) if transfer else None
    screenshot_url = _optional_str(payload, "payment_screenshot", 500) if transfer else None
    account_name = _optional_str(payload, "customer_account_name", 120) if transfer else None
    account_no = _optional_str(payload, "customer_account_no", 64) if transfer else None

    method = _resolve_payment_method(user, payload.get("payment_method_id"))
    company_account = _resolve_company_account(
        payload.get("company_account_id") if transfer else None,
        required=transfer and require_company_account,
    )
    if method is not None and transfer:
        account_name = account_name or method.account_name
        account_no = account_no or method.account_number

    uploaded = []
    if transfer and screenshot_file is not None:
        uploaded = [upload_service.save_image(screenshot_file)]
        screenshot_url = uploaded[0]["url"]

    def _op():
        product_ids = [pid for pid, _ in items]
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()}
        totals = get_stock_totals(product_ids)

        order = Order(
            user_id=user.id,
            status="PENDING",
            payment_type=payment_type,
            payment_method_id=method.id if method else None,
            company_account_id=company_account.id if company_account else None,
            shipping_address=address,
            notes=notes,
            transaction_id=transaction_id,
            payment_screenshot=screenshot_url,
            customer_account_name=account_name,
            customer_account_no=account_no,
            payment_verified=False,
            stock_deducted=False,
            total_amount=to_money(0),
        )

        total = to_money(0)
        for product_id, quantity in items:
            product = products.get(product_id)
            ensure_sellable(product, quantity, totals.get(product_id, 0), product_id=product_id)
            unit_price = to_money(product.price)
            total += unit_price * quantity
            order.items.append(OrderItem(
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                meta=dict(product.meta or {}),
            ))
        order.total_amount = to_money(total)

        db.session.add(order)
        db.session.flush()
        order.order_number = format_order_number(order.id)

        audit_service.record_order_event(
            order,
            "order.created",
            actor_user_id=user.id,
            to_status="PENDING",
            payload={"payment_type": payment_type, "total_amount": str(order.total_amount)},
        )

        if payment_type == "COD" and current_app.config.get("COD_INITIAL_STATUS", "PENDING") == "PROCESSING":
            lifecycle_service.apply_transition(order, "PROCESSING", actor_user_id=None, reason="COD auto-accept")

        return order

    try:
        order = run_in_transaction(_op)
    except Exception:
        upload_service.discard_uploads([u["url"] for u in uploaded])
        raise

    current_app.logger.info(
        "Order %s created by user %s: %s %s, total %s",
        order.order_number, user.id, order.payment_type, order.status, order.total_amount,
    )
    return order


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int, user: User) -> Order:
    """Owner or admin; anyone else gets NotFound so other order ids stay hidden."""
    order = db.session.get(Order, order_id)
    if order is None or (order.user_id != user.id and not user.is_admin):
        raise NotFoundError("Order not found")
    return order


def _validate_status_filter(status: str | None) -> str | None:
    if not status:
        return None
    status = status.strip().upper()
    lifecycle_service.validate_status(status)
    return status


def list_user_orders(user: User, *, status: str | None, page: int, limit: int) -> tuple[list[Order], int]:
    query = db.session.query(Order).filter(Order.user_id == user.id)
    status = _validate_status_filter(status)
    if status:
        query = query.filter(Order.status == status)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def list_orders_admin(
    *,
    search: str | None = None,
    status: str | None = None,
    payment_type: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    """
    Admin listing. search matches order number, transaction id, customer
    name and email. end_date covers the whole day it names.
    """
    query = db.session.query(Order).join(User, Order.user_id == User.id)

    status = _validate_status_filter(status)
    if status:
        query = query.filter(Order.status == status)

    if payment_type:
        payment_type = payment_type.strip().upper()
        if payment_type not in ORDER_PAYMENT_TYPES:
            raise ValidationError(f"paymentType must be one of: {', '.join(ORDER_PAYMENT_TYPES)}")
        query = query.filter(Order.payment_type == payment_type)

    if search and search.strip():
        term = search.strip()
        pattern = f"%{term}%"
        clauses = [
            Order.order_number.ilike(pattern),
            Order.transaction_id.ilike(pattern),
            User.name.ilike(pattern),
            User.email.ilike(pattern),
        ]
        if term.isdigit():
            clauses.append(Order.id == int(term))
        query = query.filter(or_(*clauses))

    try:
        start_dt = parse_iso_datetime(start_date)
        end_dt = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("startDate/endDate must be ISO-8601 dates")
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        if end_date and len(end_date.strip()) == 10:
            end_dt = end_dt + timedelta(days=1)
            query = query.filter(Order.created_at < end_dt)
        else:
            query = query.filter(Order.created_at <= end_dt)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total
