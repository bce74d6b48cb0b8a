# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/ricemart/routes/orders.py
"""
Order routes

CUSTOMER (own orders only; others' orders answer 404):
- POST  /api/orders                    checkout (COD or ONLINE_TRANSFER)
- GET   /api/orders                    my orders
- GET   /api/orders/<id>
- PATCH /api/orders/<id>/cancel        PENDING / PROCESSING / ON_HOLD
- PATCH /api/orders/<id>/return        DELIVERED
- PATCH /api/orders/<id>/payment-proof transaction id and/or screenshot

ADMIN:
- GET   /api/orders/admin/all          filters: search, status, paymentType, startDate, endDate
- PATCH /api/orders/<id>/status        {"status": "...", "reason"?: "..."}
- GET   /api/orders/<id>/events        audit trail
"""

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..request_utils import body_payload, is_multipart, json_body, pagination_args
from ..responses import DOMAIN_ERRORS, domain_error, error, internal_error, pagination_meta, success
from ..services import audit_service, lifecycle_service, order_service, payment_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_FORM_JSON_FIELDS = ("items", "shipping_address")


def order_view(order, *, include_customer: bool = False) -> dict:
    locale = request.args.get("locale") or getattr(g.current_user, "locale", "en")
    data = order.to_dict(locale=locale if locale in ("en", "my") else "en", include_customer=include_customer)
    if g.current_user.is_admin:
        data["allowed_transitions"] = lifecycle_service.allowed_next_statuses(order)
    return data


@orders_bp.post("")
@require_auth
def create_order():
    """
    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "shipping_address": {"name", "phone", "address", "city"?, "state"?, "postal_code"?},
        "payment_type": "COD" | "ONLINE_TRANSFER",
        "payment_method_id"?: 3,
        "company_account_id"?: 1,        (ONLINE_TRANSFER)
        "transaction_id"?: "...",        (ONLINE_TRANSFER)
        "payment_screenshot"?: "/uploads/...",
        "customer_account_name"?: "...",
        "customer_account_no"?: "...",
        "notes"?: "..."
    }

    Returns:
        201: order created (stock is not deducted yet)
        400: invalid input or a product is unavailable
    """
    try:
        payload = body_payload(json_fields=ORDER_FORM_JSON_FIELDS)
        screenshot = request.files.get("screenshot") if is_multipart() else None
        order = order_service.create_order(g.current_user, payload, screenshot_file=screenshot)
        return success(order_view(order), message="Order placed", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.get("")
@require_auth
def list_my_orders():
    try:
        page, limit = pagination_args()
        orders, total = order_service.list_user_orders(
            g.current_user, status=request.args.get("status"), page=page, limit=limit,
        )
        return success([order_view(o) for o in orders], pagination=pagination_meta(page, limit, total))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list orders")


@orders_bp.get("/admin/all")
@require_auth
@require_admin
def list_all_orders():
    try:
        page, limit = pagination_args()
        orders, total = order_service.list_orders_admin(
            search=request.args.get("search"),
            status=request.args.get("status"),
            payment_type=request.args.get("paymentType"),
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            page=page,
            limit=limit,
        )
        return success(
            [order_view(o, include_customer=True) for o in orders],
            pagination=pagination_meta(page, limit, total),
        )
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list orders")


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    try:
        order = order_service.get_order(order_id, g.current_user)
        return success(order_view(order, include_customer=g.current_user.is_admin))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get order")


@orders_bp.get("/<int:order_id>/events")
@require_auth
@require_admin
def list_order_events(order_id: int):
    try:
        order = order_service.get_order(order_id, g.current_user)
        return success([ev.to_dict() for ev in audit_service.list_order_events(order.id)])
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list order events")


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_admin
def update_order_status(order_id: int):
    """
    Admin status change along the order state machine.

    Returns:
        200: transitioned (stock/refund side effects applied)
        400: unknown status, or stock shortfall on PROCESSING
        404: order not found
        409: transition not allowed (state unchanged)
    """
    try:
        data = json_body()
        status = str(data.get("status") or "").strip().upper()
        if not status:
            return error("status is required", 400, details=[{"field": "status", "message": "is required"}])
        order = lifecycle_service.transition_order(
            order_id, status, actor=g.current_user, reason=data.get("reason"),
        )
        return success(order_view(order, include_customer=True), message=f"Order status updated to {order.status}")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to update order status")


@orders_bp.patch("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    try:
        data = json_body(required=False)
        order = lifecycle_service.cancel_order(order_id, g.current_user, reason=data.get("reason"))
        return success(order_view(order), message="Order canceled")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to cancel order")


@orders_bp.patch("/<int:order_id>/return")
@require_auth
def return_order(order_id: int):
    try:
        data = json_body(required=False)
        order = lifecycle_service.request_return(order_id, g.current_user, reason=data.get("reason"))
        return success(order_view(order), message="Return recorded")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to return order")


@orders_bp.patch("/<int:order_id>/payment-proof")
@require_auth
def attach_payment_proof(order_id: int):
    """
    JSON {"transaction_id"?, "payment_screenshot"?} or multipart with a
    `screenshot` file (plus optional transaction_id form field).

    Returns 409 once the order has left PENDING or payment is verified.
    """
    try:
        payload = body_payload()
        screenshot = request.files.get("screenshot") if is_multipart() else None
        order = payment_service.attach_payment_proof(
            order_id,
            g.current_user,
            transaction_id=payload.get("transaction_id"),
            screenshot_url=payload.get("payment_screenshot"),
            screenshot_file=screenshot,
        )
        return success(order_view(order), message="Payment proof submitted")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to attach payment proof")
