# Overview: Service-layer operations for the order status lifecycle.

"""
Order Status Lifecycle

================================================================================
STATE MACHINE
================================================================================

    PENDING    -> PROCESSING | ON_HOLD | CANCELED
    PROCESSING -> ON_HOLD | SHIPPED | CANCELED
    ON_HOLD    -> PROCESSING | SHIPPED | CANCELED
    SHIPPED    -> DELIVERED | CANCELED
    DELIVERED  -> RETURNED
    RETURNED   -> REFUNDED
    CANCELED, REFUNDED: terminal

GUARDS:
- ONLINE_TRANSFER orders cannot enter PROCESSING, SHIPPED or DELIVERED
  until payment_verified (set by payment_service.confirm_payment).
- RETURNED is refused after RETURN_WINDOW_DAYS past delivered_at, when
  that setting is configured.

SIDE EFFECTS (same transaction as the status write):
- -> PROCESSING or SHIPPED while stock is not yet deducted: one negative
  StockEntry per item. An order parked ON_HOLD can ship without passing
  through PROCESSING, so both entries deduct. Fails with
  ProductUnavailableError if a no-backorder product would go below zero.
- -> CANCELED / RETURNED while stock is deducted: compensating positive
  entries of the same quantities (net zero over the cycle).
- -> CANCELED: Refund of the total if transfer money was verified.
  COD cancellations never refund (nothing was collected).
- -> RETURNED: Refund of the total.
- -> DELIVERED sets delivered_at; -> REFUNDED sets refunded_at.

A rejected transition raises before anything is written; the caller's
transaction rolls back, so status and stock are left untouched.
================================================================================
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Order, Product, Refund, StockEntry, User
from ricemart.money import to_money
from ricemart.services import audit_service
from ricemart.services.catalog_service import ProductUnavailableError, get_total_stock
from ricemart.services.concurrency import lock_for_update, run_in_transaction
from ricemart.time_utils import utcnow
from ricemart.validation import NotFoundError, ValidationError


ORDER_STATUSES = (
    "PENDING", "PROCESSING", "ON_HOLD", "SHIPPED",
    "DELIVERED", "CANCELED", "RETURNED", "REFUNDED",
)
VALID_STATUSES = set(ORDER_STATUSES)

ALLOWED_TRANSITIONS = {
    "PENDING": {"PROCESSING", "ON_HOLD", "CANCELED"},
    "PROCESSING": {"ON_HOLD", "SHIPPED", "CANCELED"},
    "ON_HOLD": {"PROCESSING", "SHIPPED", "CANCELED"},
    "SHIPPED": {"DELIVERED", "CANCELED"},
    "DELIVERED": {"RETURNED"},
    "RETURNED": {"REFUNDED"},
    "CANCELED": set(),
    "REFUNDED": set(),
}

TERMINAL_STATUSES = {s for s, targets in ALLOWED_TRANSITIONS.items() if not targets}
PAYMENT_GATED_STATUSES = {"PROCESSING", "SHIPPED", "DELIVERED"}
STOCK_DEDUCTING_STATUSES = {"PROCESSING", "SHIPPED"}
CUSTOMER_CANCELABLE_STATUSES = {"PENDING", "PROCESSING", "ON_HOLD"}


class InvalidTransitionError(ValueError):
    """
    Raised when a status change violates the state machine or one of its guards.

    Domain error: the order is left exactly as it was.
    """


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            [{"field": "status", "message": "is invalid"}],
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """Adjacency check only; guards are evaluated by check_transition."""
    validate_status(from_status)
    validate_status(to_status)
    return to_status in ALLOWED_TRANSITIONS[from_status]


def allowed_next_statuses(order: Order) -> list[str]:
    """Targets the state machine and guards would currently accept."""
    result = []
    for status in ORDER_STATUSES:
        try:
            check_transition(order, status)
        except InvalidTransitionError:
            continue
        result.append(status)
    return result


def check_transition(order: Order, to_status: str) -> None:
    validate_status(to_status)

    if order.status == to_status:
        raise InvalidTransitionError(f"Order {order.order_number} is already {to_status}")

    if not can_transition(order.status, to_status):
        raise InvalidTransitionError(f"Cannot change order status from {order.status} to {to_status}")

    if (
        order.payment_type == "ONLINE_TRANSFER"
        and to_status in PAYMENT_GATED_STATUSES
        and not order.payment_verified
    ):
        raise InvalidTransitionError(
            f"Payment must be verified before order can move to {to_status}"
        )

    if to_status == "RETURNED":
        window_days = current_app.config.get("RETURN_WINDOW_DAYS")
        if window_days is not None and order.delivered_at is not None:
            if utcnow() > order.delivered_at + timedelta(days=int(window_days)):
                raise InvalidTransitionError(f"Return window of {window_days} days has expired")


def _quantities_by_product(order: Order) -> "OrderedDict[int, int]":
    quantities: OrderedDict[int, int] = OrderedDict()
    for item in order.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    return quantities


def _deduct_stock(order: Order, actor_user_id: int | None, to_status: str) -> None:
    quantities = _quantities_by_product(order)
    products = {
        p.id: p
        for p in lock_for_update(db.session.query(Product).filter(Product.id.in_(list(quantities)))).all()
    }
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is not None and not product.allow_sell_without_stock:
            available = get_total_stock(product_id)
            if available - quantity < 0:
                raise ProductUnavailableError(
                    f"Insufficient stock for '{product.name_en}': requested {quantity}, available {max(available, 0)}",
                    product_id,
                )

    for product_id, quantity in quantities.items():
        db.session.add(StockEntry(
            product_id=product_id,
            quantity=-quantity,
            purchase_price=0,
            order_id=order.id,
            created_by_user_id=actor_user_id,
            note=f"Order {order.order_number} {to_status.lower()}",
        ))
    order.stock_deducted = True


def _restock(order: Order, actor_user_id: int | None, to_status: str) -> None:
    for product_id, quantity in _quantities_by_product(order).items():
        db.session.add(StockEntry(
            product_id=product_id,
            quantity=quantity,
            purchase_price=0,
            order_id=order.id,
            created_by_user_id=actor_user_id,
            note=f"Order {order.order_number} {to_status.lower()} restock",
        ))
    order.stock_deducted = False


def _create_refund(order: Order, reason: str | None, actor_user_id: int | None) -> Refund:
    refund = Refund(
        order_id=order.id,
        amount=to_money(order.total_amount),
        reason=reason,
        created_by_user_id=actor_user_id,
    )
    db.session.add(refund)
    order.refunds.append(refund)
    return refund


def money_collected(order: Order) -> bool:
    """Whether the customer has paid: verified transfer, or COD handed over on delivery."""
    if order.payment_type == "ONLINE_TRANSFER":
        return bool(order.payment_verified)
    return order.delivered_at is not None


def apply_transition(
    order: Order,
    to_status: str,
    *,
    actor_user_id: int | None,
    reason: str | None = None,
) -> Order:
    """
    Validate and apply one transition with its side effects.
    Does not commit; callers run this inside run_in_transaction.
    """
    check_transition(order, to_status)
    from_status = order.status
    now = utcnow()
    refund = None

    if to_status in STOCK_DEDUCTING_STATUSES and not order.stock_deducted:
        _deduct_stock(order, actor_user_id, to_status)

    if to_status in ("CANCELED", "RETURNED") and order.stock_deducted:
        _restock(order, actor_user_id, to_status)

    if to_status == "CANCELED" and money_collected(order):
        refund = _create_refund(order, reason or "Order canceled", actor_user_id)

    if to_status == "RETURNED":
        refund = _create_refund(order, reason or "Order returned", actor_user_id)

    if to_status == "DELIVERED":
        order.delivered_at = now

    if to_status == "REFUNDED":
        if not order.refunds:
            refund = _create_refund(order, reason or "Order refunded", actor_user_id)
        order.refunded_at = now

    order.status = to_status

    audit_service.record_order_event(
        order,
        "order.status_changed",
        actor_user_id=actor_user_id,
        from_status=from_status,
        to_status=to_status,
        note=reason,
        payload={"refund_amount": str(refund.amount)} if refund is not None else None,
    )
    return order


def _transition_locked(order_id: int, to_status: str, *, actor: User, reason: str | None, owner_only: bool, allowed_from: set[str] | None) -> Order:
    validate_status(to_status)
    if reason is not None:
        reason = str(reason).strip() or None
    if reason is not None and len(reason) > 500:
        raise ValidationError("reason exceeds max length 500", [{"field": "reason", "message": "exceeds max length 500"}])

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None or (owner_only and order.user_id != actor.id):
            raise NotFoundError("Order not found")
        if allowed_from is not None and order.status not in allowed_from:
            raise InvalidTransitionError(f"Order cannot be {to_status.lower()} from status {order.status}")
        apply_transition(order, to_status, actor_user_id=actor.id, reason=reason)
        return order

    order = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s moved to %s by user %s", order.order_number, order.status, actor.id,
    )
    return order


def transition_order(order_id: int, to_status: str, *, actor: User, reason: str | None = None) -> Order:
    """Admin status update: any edge of the state machine, subject to guards."""
    return _transition_locked(order_id, to_status, actor=actor, reason=reason, owner_only=False, allowed_from=None)


def cancel_order(order_id: int, user: User, *, reason: str | None = None) -> Order:
    """Customer cancel before shipping."""
    return _transition_locked(
        order_id, "CANCELED",
        actor=user, reason=reason or "Canceled by customer",
        owner_only=True, allowed_from=CUSTOMER_CANCELABLE_STATUSES,
    )


def request_return(order_id: int, user: User, *, reason: str | None = None) -> Order:
    """Customer return of a delivered order."""
    return _transition_locked(
        order_id, "RETURNED",
        actor=user, reason=reason or "Returned by customer",
        owner_only=True, allowed_from={"DELIVERED"},
    )
