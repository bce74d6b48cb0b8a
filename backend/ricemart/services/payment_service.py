# Overview: Service-layer operations for online-transfer payment review.

"""
Online Transfer Payment Review

WHY: Transfer orders are paid outside the system (bank app / wallet). The
customer attaches proof; an admin checks it against the company account
and records a decision. Fulfilment is gated on that decision
(lifecycle_service.PAYMENT_GATED_STATUSES).

FLOW:
    PENDING, no proof        -> customer attach_payment_proof
    PENDING, proof attached  -> admin confirm_payment(accept | reject)
    accept: payment_verified = True (status unchanged; admin then moves
            the order to PROCESSING, which deducts stock)
    reject: proof cleared so the customer can resubmit; order stays
            PENDING, or is CANCELED when CANCEL_ON_PAYMENT_REJECTION is set.
            Rejection never refunds: no money or stock has moved.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, User
from ricemart.services import audit_service, lifecycle_service, upload_service
from ricemart.services.concurrency import lock_for_update, run_in_transaction
from ricemart.time_utils import to_utc_z, utcnow
from ricemart.validation import NotFoundError, ValidationError, coerce_bool


DECISIONS = ("accept", "reject")
REVIEWABLE_STATUSES = {"PENDING", "ON_HOLD"}
PROOF_EDITABLE_STATUSES = {"PENDING"}
MAX_NOTE_LENGTH = 500


class OrderNotEditableError(ValueError):
    """The order's state no longer allows this payment change."""


def normalize_decision(decision=None, confirmed=None) -> str:
    """Accepts decision="accept"/"reject" or the older confirmed=true/false form."""
    if decision not in (None, ""):
        value = str(decision).strip().lower()
        if value in DECISIONS:
            return value
        raise ValidationError("decision must be 'accept' or 'reject'", [{"field": "decision", "message": "is invalid"}])
    if confirmed is not None:
        return "accept" if coerce_bool(confirmed, "confirmed") else "reject"
    raise ValidationError("decision is required", [{"field": "decision", "message": "is required"}])


def _load_transfer_order(order_id: int, *, owner: User | None = None) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None or (owner is not None and order.user_id != owner.id):
        raise NotFoundError("Order not found")
    if order.payment_type != "ONLINE_TRANSFER":
        raise OrderNotEditableError("Payment review only applies to online transfer orders")
    return order


def confirm_payment(order_id: int, *, decision: str, note: str | None, admin: User) -> Order:
    """
    Record an admin's accept/reject decision on the attached proof.

    Raises:
        NotFoundError: unknown order
        OrderNotEditableError: not a transfer order, already verified,
            or not in a reviewable status
        ValidationError: accepting without any proof attached
    """
    note = str(note).strip() or None if note is not None else None
    if note and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"note exceeds max length {MAX_NOTE_LENGTH}", [{"field": "note", "message": "is too long"}])
    if decision not in DECISIONS:
        raise ValidationError("decision must be 'accept' or 'reject'")

    def _op():
        order = _load_transfer_order(order_id)
        if order.payment_verified:
            raise OrderNotEditableError("Payment has already been verified")
        if order.status not in REVIEWABLE_STATUSES:
            raise OrderNotEditableError(f"Payment cannot be reviewed while order is {order.status}")

        now = utcnow()
        if decision == "accept":
            if not order.has_payment_proof:
                raise ValidationError("Cannot confirm payment before the customer attaches proof")
            order.payment_verified = True
            order.payment_verified_at = now
            order.payment_verified_by_user_id = admin.id
            order.payment_review_note = note
            audit_service.record_order_event(
                order, "payment.confirmed",
                actor_user_id=admin.id, note=note,
                payload={"transaction_id": order.transaction_id, "payment_screenshot": order.payment_screenshot},
            )
            return order

        rejected_proof = {"transaction_id": order.transaction_id, "payment_screenshot": order.payment_screenshot}
        order.transaction_id = None
        order.payment_screenshot = None
        order.payment_rejected_at = now
        order.payment_review_note = note
        audit_service.record_order_event(
            order, "payment.rejected",
            actor_user_id=admin.id, note=note, payload=rejected_proof,
        )
        if current_app.config.get("CANCEL_ON_PAYMENT_REJECTION"):
            lifecycle_service.apply_transition(
                order, "CANCELED", actor_user_id=admin.id, reason=note or "Payment rejected",
            )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Payment for order %s %sed by admin %s", order.order_number, decision, admin.id)
    return order


def attach_payment_proof(
    order_id: int,
    user: User,
    *,
    transaction_id: str | None = None,
    screenshot_url: str | None = None,
    screenshot_file=None,
) -> Order:
    """
    Customer submits or replaces transfer proof.

    Allowed only while the order is PENDING and not yet verified. A
    screenshot file is stored before the DB write and removed again if
    that write fails.
    """
    transaction_id = (transaction_id or "").strip() or None
    screenshot_url = (screenshot_url or "").strip() or None
    if transaction_id and len(transaction_id) > 100:
        raise ValidationError("transaction_id exceeds max length 100", [{"field": "transaction_id", "message": "is too long"}])
    if not transaction_id and not screenshot_url and screenshot_file is None:
        raise ValidationError("Provide a transaction_id or a payment screenshot")

    # Re-checked under lock in _op
    order = db.session.get(Order, order_id)
    if order is None or order.user_id != user.id:
        raise NotFoundError("Order not found")
    if order.payment_type != "ONLINE_TRANSFER":
        raise OrderNotEditableError("Payment proof only applies to online transfer orders")
    if order.status not in PROOF_EDITABLE_STATUSES or order.payment_verified:
        raise OrderNotEditableError("Payment proof can only be changed while the order is pending review")

    uploaded = []
    if screenshot_file is not None:
        uploaded = [upload_service.save_image(screenshot_file)]
        screenshot_url = uploaded[0]["url"]

    def _op():
        order = _load_transfer_order(order_id, owner=user)
        if order.status not in PROOF_EDITABLE_STATUSES or order.payment_verified:
            raise OrderNotEditableError("Payment proof can only be changed while the order is pending review")

        previous = {"transaction_id": order.transaction_id, "payment_screenshot": order.payment_screenshot}
        if transaction_id:
            order.transaction_id = transaction_id
        if screenshot_url:
            order.payment_screenshot = screenshot_url
        audit_service.record_order_event(
            order, "payment.proof_attached",
            actor_user_id=user.id,
            payload={"previous": previous, "transaction_id": order.transaction_id, "payment_screenshot": order.payment_screenshot},
        )
        return order

    try:
        order = run_in_transaction(_op)
    except Exception:
        upload_service.discard_uploads([u["url"] for u in uploaded])
        raise

    current_app.logger.info("Payment proof attached to order %s", order.order_number)
    return order


def get_payment_info(order_id: int, user: User) -> dict:
    """What the customer needs to pay and what they have submitted so far."""
    order = db.session.get(Order, order_id)
    if order is None or (order.user_id != user.id and not user.is_admin):
        raise NotFoundError("Order not found")
    if order.payment_type != "ONLINE_TRANSFER":
        raise ValidationError("Order is not an online transfer order")

    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "total_amount": str(order.total_amount),
        "company_account": order.company_account.to_dict(public=True) if order.company_account else None,
        "transaction_id": order.transaction_id,
        "payment_screenshot": order.payment_screenshot,
        "customer_account_name": order.customer_account_name,
        "customer_account_no": order.customer_account_no,
        "payment_verified": order.payment_verified,
        "payment_rejected_at": to_utc_z(order.payment_rejected_at),
        "payment_review_note": order.payment_review_note,
        "awaiting_proof": order.awaiting_proof,
        "can_attach_proof": order.status in PROOF_EDITABLE_STATUSES and not order.payment_verified,
    }


def get_payment_details(order_id: int) -> dict:
    """Admin review view: the order with customer, proof and review history."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if order.payment_type != "ONLINE_TRANSFER":
        raise ValidationError("Order is not an online transfer order")

    data = order.to_dict(include_customer=True)
    data["payment_method"] = order.payment_method.to_dict() if order.payment_method else None
    data["payment_events"] = [
        ev.to_dict()
        for ev in audit_service.list_order_events(order.id)
        if ev.event_type.startswith("payment.")
    ]
    data["can_review"] = (not order.payment_verified) and order.status in REVIEWABLE_STATUSES
    return data
