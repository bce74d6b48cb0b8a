from __future__ import annotations

from ..extensions import db
from ricemart.money import money_str
from ricemart.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Rice catalog entry with English / Myanmar text.

    STOCK: there is no quantity column. On-hand stock is the sum of the
    product's StockEntry rows (see catalog_service.get_total_stock).

    METADATA: free-form scalar attributes (variety, weight, grade, origin)
    stored as JSON in the `metadata` column. `metadata` is reserved on
    declarative classes, so the attribute is `meta`.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_disabled_created", "disabled", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    name_en = db.Column(db.String(255), nullable=False)
    name_my = db.Column(db.String(255), nullable=True)
    description_en = db.Column(db.Text, nullable=True)
    description_my = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)

    disabled = db.Column(db.Boolean, nullable=False, default=False)
    out_of_stock = db.Column(db.Boolean, nullable=False, default=False)
    # Backorder: sell even when the ledger total is zero or negative
    allow_sell_without_stock = db.Column(db.Boolean, nullable=False, default=True)

    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name_en={self.name_en!r}>"

    def localized_name(self, locale: str) -> str:
        if locale == "my" and self.name_my:
            return self.name_my
        return self.name_en

    def localized_description(self, locale: str) -> str | None:
        if locale == "my" and self.description_my:
            return self.description_my
        return self.description_en

    def to_dict(self, locale: str = "en", *, in_stock: bool | None = None, total_stock: int | None = None) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.localized_name(locale),
            "description": self.localized_description(locale),
            "name_en": self.name_en,
            "name_my": self.name_my,
            "description_en": self.description_en,
            "description_my": self.description_my,
            "price": money_str(self.price),
            "images": list(self.images or []),
            "metadata": dict(self.meta or {}),
            "disabled": self.disabled,
            "out_of_stock": self.out_of_stock,
            "allow_sell_without_stock": self.allow_sell_without_stock,
            "in_stock": in_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        # Raw quantities are for admin views only
        if total_stock is not None:
            data["total_stock"] = total_stock
        return data


class StockEntry(db.Model):
    """
    Append-only stock ledger row. Positive = receipt or restock,
    negative = consumption. Never updated or deleted.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.Index("ix_stock_entries_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)

    # Set when the entry is an order-driven deduction or restock
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "purchase_price": money_str(self.purchase_price),
            "note": self.note,
            "order_id": self.order_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
