# Overview: Flask API routes for the product catalog and stock ledger.

# backend/ricemart/routes/products.py
"""
Catalog routes

PUBLIC:
- GET /api/products            paginated, localized, active products only
- GET /api/products/<id>       404 for missing or disabled products

ADMIN:
- POST  /api/products          JSON, or multipart with `images` files
- PATCH /api/products/<id>     partial update
- POST  /api/products/stock    append a stock ledger entry
- GET   /api/products/<id>/stock  ledger with running totals
- DELETE /api/products/<id>    only for products no order refers to
"""

from flask import Blueprint, current_app, g, request

from ..decorators import current_user_is_admin, optional_auth, require_admin, require_auth
from ..request_utils import body_payload, is_multipart, json_body, pagination_args, uploaded_files
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, pagination_meta, success
from ..services import catalog_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_FORM_JSON_FIELDS = ("metadata", "images")


@products_bp.get("")
@optional_auth
def list_products():
    """
    Query params (all optional):
    - page, limit (default 20, max 100)
    - locale: en | my
    - search: substring over names, descriptions and SKU
    - variety, weight: exact metadata match
    - priceMin, priceMax
    - inStock: true | false
    - sortBy: priceLow | priceHigh | name | newest | oldest
    - disabled: true | false | all (admins only; ignored otherwise)
    - excludeId: omit one product (e.g. "related products")
    """
    try:
        is_admin = current_user_is_admin()
        page, limit = pagination_args()
        locale = catalog_service.parse_locale(request.args.get("locale"))
        filters = catalog_service.parse_product_filters(request.args, is_admin=is_admin)

        products, total = catalog_service.list_products(
            filters, page=page, limit=limit, locale=locale, is_admin=is_admin,
        )
        return success(products, pagination=pagination_meta(page, limit, total))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
@optional_auth
def get_product(product_id: int):
    try:
        locale = catalog_service.parse_locale(request.args.get("locale"))
        product = catalog_service.get_product(product_id, locale=locale, is_admin=current_user_is_admin())
        return success(product)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get product")


@products_bp.post("")
@require_auth
@require_admin
def create_product():
    """
    Create a product.

    JSON body or multipart form. In multipart, `metadata` and `images`
    are JSON text and image files go in `images` / `image` file fields;
    stored file URLs are appended to `images`.
    """
    try:
        payload = body_payload(json_fields=PRODUCT_FORM_JSON_FIELDS)
        files = uploaded_files("images", "image") if is_multipart() else []
        product = catalog_service.create_product(payload, image_files=files)
        data = catalog_service.get_product(product.id, is_admin=True)
        return success(data, message="Product created", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_admin
def update_product(product_id: int):
    """Only fields present in the body are changed."""
    try:
        payload = body_payload(json_fields=PRODUCT_FORM_JSON_FIELDS)
        files = uploaded_files("images", "image") if is_multipart() else []
        product = catalog_service.update_product(product_id, payload, image_files=files)
        data = catalog_service.get_product(product.id, is_admin=True)
        return success(data, message="Product updated")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.post("/stock")
@require_auth
@require_admin
def add_stock():
    """
    Request body:
    {
        "product_id": 1,
        "quantity": 50,          (non-zero; negative = write-off)
        "purchase_price": "42000.00",
        "note": "Delivery from mill"   (optional)
    }
    """
    try:
        data = json_body()
        entry = catalog_service.add_stock_entry(
            data.get("product_id"),
            data.get("quantity"),
            data.get("purchase_price"),
            note=data.get("note"),
            created_by_user_id=g.current_user.id,
        )
        body = entry.to_dict()
        body["total_stock"] = catalog_service.get_total_stock(entry.product_id)
        return success(body, message="Stock entry added", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to add stock entry")


@products_bp.get("/<int:product_id>/stock")
@require_auth
@require_admin
def list_stock(product_id: int):
    try:
        return success(catalog_service.list_stock_entries(product_id))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list stock entries")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product(product_id: int):
    """Ordered products answer 409; disable them with PATCH instead."""
    try:
        deleted = catalog_service.delete_product(product_id)
        current_app.logger.info("Product %s (%s) deleted by admin %s", deleted["id"], deleted["sku"], g.current_user.id)
        return success({"id": deleted["id"]}, message="Product deleted")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to delete product")
