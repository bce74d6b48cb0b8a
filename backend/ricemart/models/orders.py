from __future__ import annotations

from ..extensions import db
from ricemart.money import money_str
from ricemart.time_utils import to_utc_z, utcnow


ORDER_PAYMENT_TYPES = ("COD", "ONLINE_TRANSFER")


class Order(db.Model):
    """
    Customer order. Items and total are frozen at creation; afterwards the
    row only changes through status transitions and payment review.

    PAYMENT REVIEW (ONLINE_TRANSFER only):
    - payment_verified is the explicit gate checked before fulfilment
    - transaction_id / payment_screenshot are the customer's proof; an
      order with neither is "awaiting proof"

    STOCK: stock_deducted records whether the ledger currently holds this
    order's consumption entries, so cancel/return can compensate exactly once.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Assigned after the first flush: ORD-000123
    order_number = db.Column(db.String(20), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    payment_type = db.Column(db.String(20), nullable=False)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    company_account_id = db.Column(db.Integer, db.ForeignKey("company_payment_accounts.id"), nullable=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    shipping_address = db.Column(db.JSON, nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    transaction_id = db.Column(db.String(100), nullable=True)
    payment_screenshot = db.Column(db.String(500), nullable=True)
    customer_account_name = db.Column(db.String(120), nullable=True)
    customer_account_no = db.Column(db.String(64), nullable=True)

    payment_verified = db.Column(db.Boolean, nullable=False, default=False)
    payment_verified_at = db.Column(db.DateTime, nullable=True)
    payment_verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payment_rejected_at = db.Column(db.DateTime, nullable=True)
    payment_review_note = db.Column(db.String(500), nullable=True)

    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)

    delivered_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy="dynamic"))
    payment_method = db.relationship("PaymentMethod")
    company_account = db.relationship("CompanyPaymentAccount")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    refunds = db.relationship("Refund", back_populates="order", order_by="Refund.id")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    @property
    def has_payment_proof(self) -> bool:
        return bool(self.transaction_id or self.payment_screenshot)

    @property
    def awaiting_proof(self) -> bool:
        return (
            self.payment_type == "ONLINE_TRANSFER"
            and self.status == "PENDING"
            and not self.payment_verified
            and not self.has_payment_proof
        )

    def to_dict(self, *, locale: str = "en", include_customer: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_type": self.payment_type,
            "payment_method_id": self.payment_method_id,
            "company_account_id": self.company_account_id,
            "company_account": self.company_account.to_dict(public=True) if self.company_account else None,
            "total_amount": money_str(self.total_amount),
            "shipping_address": dict(self.shipping_address or {}),
            "notes": self.notes,
            "transaction_id": self.transaction_id,
            "payment_screenshot": self.payment_screenshot,
            "customer_account_name": self.customer_account_name,
            "customer_account_no": self.customer_account_no,
            "payment_verified": self.payment_verified,
            "payment_verified_at": to_utc_z(self.payment_verified_at),
            "payment_rejected_at": to_utc_z(self.payment_rejected_at),
            "payment_review_note": self.payment_review_note,
            "awaiting_proof": self.awaiting_proof,
            "stock_deducted": self.stock_deducted,
            "delivered_at": to_utc_z(self.delivered_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "items": [item.to_dict(locale=locale) for item in self.items],
            "refunds": [refund.to_dict() for refund in self.refunds],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_customer and self.user is not None:
            data["customer"] = {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
                "phone": self.user.phone,
            }
        return data


class OrderItem(db.Model):
    """Immutable order line: unit price and product metadata as of checkout."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def to_dict(self, *, locale: str = "en") -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.localized_name(locale) if product else None,
            "product_image": (product.images or [None])[0] if product else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "metadata": dict(self.meta or {}),
        }


class Refund(db.Model):
    """Money owed back to the customer. Append-only."""
    __tablename__ = "refunds"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(500), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="refunds")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": money_str(self.amount),
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderEvent(db.Model):
    """
    Append-only audit trail for order mutations.

    - Written inside the same transaction as the change it records.
    - Never updated or deleted.
    """
    __tablename__ = "order_events"
    __table_args__ = (
        db.Index("ix_order_events_order_occurred", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    event_type = db.Column(db.String(40), nullable=False)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(500), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
