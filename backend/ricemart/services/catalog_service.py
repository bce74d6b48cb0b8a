# Overview: Service-layer operations for the product catalog and stock ledger.

"""
Catalog & Stock Ledger

STOCK MODEL:
- StockEntry rows are an append-only ledger; on-hand = SUM(quantity)
- Admin receipts are positive, order consumption negative, restocks positive
- allow_sell_without_stock=False forbids order deductions below zero

AVAILABILITY (what a customer may add to an order):
- not disabled
- not flagged out_of_stock
- backorder allowed, or ledger total covers the requested quantity

Public views only ever say in_stock true/false; raw totals are admin-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import and_, func, not_, or_, select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderItem, Product, StockEntry
from ricemart.services import upload_service
from ricemart.services.concurrency import lock_for_update, run_in_transaction
from ricemart.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_decimal,
    coerce_int,
    enforce_rules_product,
    parse_optional_bool,
    parse_optional_decimal,
    parse_optional_int,
    validate_payload,
)


SORT_KEYS = ("priceLow", "priceHigh", "name", "newest", "oldest")
LOCALES = ("en", "my")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "sku", "name_en", "name_my", "description_en", "description_my",
        "price", "images", "disabled", "out_of_stock", "allow_sell_without_stock", "meta",
    }),
    required_on_create=frozenset({"name_en", "price"}),
    aliases=(("metadata", "meta"),),
)


class ProductUnavailableError(ValueError):
    """A product cannot be sold: disabled, flagged out of stock, or short without backorder."""

    def __init__(self, message: str, product_id: int | None = None):
        super().__init__(message)
        self.product_id = product_id


@dataclass
class ProductFilters:
    search: str | None = None
    variety: str | None = None
    weight: str | None = None
    price_min: Decimal | None = None
    price_max: Decimal | None = None
    in_stock: bool | None = None
    # None = active only; True = disabled only; "all" = both (admin only)
    disabled: bool | str | None = None
    exclude_id: int | None = None
    sort_by: str = "newest"


# =============================================================================
# STOCK LEDGER
# =============================================================================

def stock_total_expr():
    """Correlated SUM over the ledger, usable in filters on Product queries."""
    return (
        select(func.coalesce(func.sum(StockEntry.quantity), 0))
        .where(StockEntry.product_id == Product.id)
        .correlate(Product)
        .scalar_subquery()
    )


def get_total_stock(product_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(StockEntry.quantity), 0))
        .filter(StockEntry.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def get_stock_totals(product_ids) -> dict[int, int]:
    ids = list({int(pid) for pid in product_ids})
    if not ids:
        return {}
    rows = (
        db.session.query(StockEntry.product_id, func.sum(StockEntry.quantity))
        .filter(StockEntry.product_id.in_(ids))
        .group_by(StockEntry.product_id)
        .all()
    )
    totals = {pid: 0 for pid in ids}
    totals.update({pid: int(total or 0) for pid, total in rows})
    return totals


def is_in_stock(product: Product, total_stock: int) -> bool:
    if product.out_of_stock:
        return False
    return product.allow_sell_without_stock or total_stock > 0


def ensure_sellable(product: Product | None, quantity: int, total_stock: int, *, product_id: int | None = None) -> None:
    """Raise ProductUnavailableError unless `quantity` units may be ordered."""
    if product is None:
        raise ProductUnavailableError(f"Product {product_id} does not exist", product_id)
    if product.disabled:
        raise ProductUnavailableError(f"Product '{product.name_en}' is not available", product.id)
    if product.out_of_stock:
        raise ProductUnavailableError(f"Product '{product.name_en}' is out of stock", product.id)
    if not product.allow_sell_without_stock and total_stock < quantity:
        raise ProductUnavailableError(
            f"Insufficient stock for '{product.name_en}': requested {quantity}, available {max(total_stock, 0)}",
            product.id,
        )


def add_stock_entry(
    product_id,
    quantity,
    purchase_price,
    *,
    note: str | None = None,
    created_by_user_id: int | None = None,
) -> StockEntry:
    """
    Append an admin stock entry.

    Positive quantities are receipts. Negative quantities are manual
    write-offs and may not push a no-backorder product below zero.
    """
    details = []
    try:
        product_id = coerce_int(product_id, "product_id")
    except ValidationError as exc:
        details.extend(exc.details)
    try:
        quantity = coerce_int(quantity, "quantity")
        if quantity == 0:
            details.append({"field": "quantity", "message": "must not be zero"})
    except ValidationError as exc:
        details.extend(exc.details)
    try:
        purchase_price = coerce_decimal(0 if purchase_price in (None, "") else purchase_price, "purchase_price")
        if purchase_price < 0:
            details.append({"field": "purchase_price", "message": "must be >= 0"})
    except ValidationError as exc:
        details.extend(exc.details)
    if note is not None and len(str(note)) > 255:
        details.append({"field": "note", "message": "exceeds max length 255"})
    if details:
        raise ValidationError("Validation failed", details)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")

        if quantity < 0 and not product.allow_sell_without_stock:
            if get_total_stock(product_id) + quantity < 0:
                raise ValidationError(
                    "Adjustment would take stock below zero",
                    [{"field": "quantity", "message": "exceeds available stock"}],
                )

        entry = StockEntry(
            product_id=product_id,
            quantity=quantity,
            purchase_price=purchase_price,
            note=(str(note).strip() or None) if note is not None else None,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(entry)
        return entry

    return run_in_transaction(_op)


def list_stock_entries(product_id: int) -> dict:
    """Ledger rows newest first, each with the running total after it."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    entries = (
        db.session.query(StockEntry)
        .filter_by(product_id=product_id)
        .order_by(StockEntry.created_at.asc(), StockEntry.id.asc())
        .all()
    )
    running = 0
    rows = []
    for entry in entries:
        running += entry.quantity
        row = entry.to_dict()
        row["running_total"] = running
        rows.append(row)
    rows.reverse()

    return {"product_id": product_id, "total_stock": running, "entries": rows}


# =============================================================================
# PRODUCT READS
# =============================================================================

def parse_product_filters(args, *, is_admin: bool) -> ProductFilters:
    """Build filters from camelCase query params. Non-admins never see disabled products."""
    sort_by = (args.get("sortBy") or "newest").strip()
    if sort_by not in SORT_KEYS:
        raise ValidationError(
            f"sortBy must be one of: {', '.join(SORT_KEYS)}",
            [{"field": "sortBy", "message": "is invalid"}],
        )

    disabled: bool | str | None = None
    raw_disabled = args.get("disabled")
    if is_admin and raw_disabled:
        disabled = "all" if raw_disabled.strip().lower() == "all" else parse_optional_bool(raw_disabled, "disabled")

    filters = ProductFilters(
        search=(args.get("search") or "").strip() or None,
        variety=(args.get("variety") or "").strip() or None,
        weight=(args.get("weight") or "").strip() or None,
        price_min=parse_optional_decimal(args.get("priceMin"), "priceMin"),
        price_max=parse_optional_decimal(args.get("priceMax"), "priceMax"),
        in_stock=parse_optional_bool(args.get("inStock"), "inStock"),
        disabled=disabled,
        exclude_id=parse_optional_int(args.get("excludeId"), "excludeId"),
        sort_by=sort_by,
    )
    if filters.price_min is not None and filters.price_max is not None and filters.price_min > filters.price_max:
        raise ValidationError("priceMin cannot exceed priceMax", [{"field": "priceMin", "message": "exceeds priceMax"}])
    return filters


def parse_locale(value: str | None) -> str:
    locale = (value or "en").strip().lower()
    if locale not in LOCALES:
        raise ValidationError(f"locale must be one of: {', '.join(LOCALES)}", [{"field": "locale", "message": "is invalid"}])
    return locale


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _sellable_clause(stock_expr):
    return and_(
        Product.out_of_stock.is_(False),
        or_(Product.allow_sell_without_stock.is_(True), stock_expr > 0),
    )


def _product_query(filters: ProductFilters, locale: str):
    query = db.session.query(Product)

    if filters.disabled is None:
        query = query.filter(Product.disabled.is_(False))
    elif filters.disabled != "all":
        query = query.filter(Product.disabled.is_(bool(filters.disabled)))

    if filters.search:
        pattern = f"%{_escape_like(filters.search)}%"
        query = query.filter(or_(
            Product.name_en.ilike(pattern, escape="\\"),
            Product.name_my.ilike(pattern, escape="\\"),
            Product.description_en.ilike(pattern, escape="\\"),
            Product.description_my.ilike(pattern, escape="\\"),
            Product.sku.ilike(pattern, escape="\\"),
        ))

    # JSON metadata lookups
    if filters.variety:
        query = query.filter(Product.meta["variety"].as_string() == filters.variety)
    if filters.weight:
        query = query.filter(Product.meta["weight"].as_string() == filters.weight)

    if filters.price_min is not None:
        query = query.filter(Product.price >= filters.price_min)
    if filters.price_max is not None:
        query = query.filter(Product.price <= filters.price_max)

    if filters.in_stock is not None:
        sellable = _sellable_clause(stock_total_expr())
        query = query.filter(sellable if filters.in_stock else not_(sellable))

    if filters.exclude_id is not None:
        query = query.filter(Product.id != filters.exclude_id)

    if filters.sort_by == "priceLow":
        query = query.order_by(Product.price.asc(), Product.id.asc())
    elif filters.sort_by == "priceHigh":
        query = query.order_by(Product.price.desc(), Product.id.desc())
    elif filters.sort_by == "name":
        name_col = func.coalesce(Product.name_my, Product.name_en) if locale == "my" else Product.name_en
        query = query.order_by(func.lower(name_col).asc(), Product.id.asc())
    elif filters.sort_by == "oldest":
        query = query.order_by(Product.created_at.asc(), Product.id.asc())
    else:
        query = query.order_by(Product.created_at.desc(), Product.id.desc())

    return query


def serialize_products(products: list[Product], *, locale: str, is_admin: bool) -> list[dict]:
    totals = get_stock_totals(p.id for p in products)
    return [
        p.to_dict(
            locale,
            in_stock=is_in_stock(p, totals.get(p.id, 0)),
            total_stock=totals.get(p.id, 0) if is_admin else None,
        )
        for p in products
    ]


def list_products(
    filters: ProductFilters,
    *,
    page: int,
    limit: int,
    locale: str = "en",
    is_admin: bool = False,
) -> tuple[list[dict], int]:
    """Returns (localized product dicts for the page, total matching)."""
    if not is_admin:
        filters.disabled = None

    query = _product_query(filters, locale)
    total = query.order_by(None).count()
    products = query.offset((page - 1) * limit).limit(limit).all()
    return serialize_products(products, locale=locale, is_admin=is_admin), total


def get_product(product_id: int, *, locale: str = "en", is_admin: bool = False) -> dict:
    product = db.session.get(Product, product_id)
    if product is None or (product.disabled and not is_admin):
        raise NotFoundError("Product not found")
    return serialize_products([product], locale=locale, is_admin=is_admin)[0]


# =============================================================================
# PRODUCT WRITES (admin)
# =============================================================================

def _check_sku_unique(sku: str | None, *, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU '{sku}' already exists")


def _commit_product(product: Product) -> Product:
    def _op():
        db.session.add(product)
        db.session.flush()
        return product

    try:
        return run_in_transaction(_op)
    except IntegrityError:
        raise ConflictError(f"SKU '{product.sku}' already exists")


def create_product(payload: dict, *, image_files=None) -> Product:
    """
    Create a product. Uploaded image files are stored first and appended
    to `images`; if the DB write fails they are deleted again.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_sku_unique(patch.get("sku"))

    uploaded = upload_service.save_images(image_files) if image_files else []
    patch["images"] = list(patch.get("images") or []) + [u["url"] for u in uploaded]
    patch.setdefault("meta", {})

    try:
        return _commit_product(Product(**patch))
    except Exception:
        upload_service.discard_uploads([u["url"] for u in uploaded])
        raise


def update_product(product_id: int, payload: dict, *, image_files=None) -> Product:
    """
    Patch semantics: only keys present in the payload change. New image
    files are appended after whatever `images` ends up as.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    if "sku" in patch:
        _check_sku_unique(patch["sku"], exclude_id=product_id)

    uploaded = upload_service.save_images(image_files) if image_files else []
    if uploaded:
        base = patch["images"] if "images" in patch else list(product.images or [])
        patch["images"] = list(base) + [u["url"] for u in uploaded]

    try:
        for key, value in patch.items():
            setattr(product, key, value)
        return _commit_product(product)
    except Exception:
        upload_service.discard_uploads([u["url"] for u in uploaded])
        raise


def delete_product(product_id: int) -> dict:
    """
    Hard-delete a product that no order has referenced, together with its
    stock ledger. Ordered products must be disabled instead, since order
    items keep pointing at them.

    Stored image files are removed after the rows are gone.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")
        if db.session.query(OrderItem.id).filter_by(product_id=product_id).first():
            raise ConflictError("Cannot delete product that has been ordered; disable it instead")

        summary = {"id": product.id, "sku": product.sku, "name_en": product.name_en, "images": list(product.images or [])}
        db.session.query(StockEntry).filter_by(product_id=product_id).delete(synchronize_session=False)
        db.session.delete(product)
        return summary

    summary = run_in_transaction(_op)
    prefix = upload_service.upload_url_prefix() + "/"
    upload_service.discard_uploads([url for url in summary["images"] if str(url).startswith(prefix)])
    return summary
