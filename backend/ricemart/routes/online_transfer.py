# Overview: Flask API routes for online-transfer checkout and payment review.

# backend/ricemart/routes/online_transfer.py
"""
Online transfer orders

- POST  /api/online-transfer-orders                           checkout to a company account
- GET   /api/online-transfer-orders/<id>/payment-info         customer: where to pay, proof status
- GET   /api/online-transfer-orders/<id>/payment-details      admin: review view
- PATCH /api/online-transfer-orders/<id>/payment-confirmation admin: accept / reject proof
"""

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..request_utils import body_payload, is_multipart, json_body
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import order_service, payment_service
from .orders import ORDER_FORM_JSON_FIELDS, order_view


online_transfer_bp = Blueprint("online_transfer", __name__, url_prefix="/api/online-transfer-orders")


@online_transfer_bp.post("")
@require_auth
def create_online_transfer_order():
    """
    Same body as POST /api/orders, with company_account_id required.
    payment_type is forced to ONLINE_TRANSFER. Multipart requests may
    carry the proof as a `screenshot` file.
    """
    try:
        payload = dict(body_payload(json_fields=ORDER_FORM_JSON_FIELDS))
        payload["payment_type"] = "ONLINE_TRANSFER"
        screenshot = request.files.get("screenshot") if is_multipart() else None
        order = order_service.create_order(
            g.current_user, payload, require_company_account=True, screenshot_file=screenshot,
        )
        return success(order_view(order), message="Order placed, awaiting payment review", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create online transfer order")


@online_transfer_bp.get("/<int:order_id>/payment-info")
@require_auth
def payment_info(order_id: int):
    try:
        return success(payment_service.get_payment_info(order_id, g.current_user))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get payment info")


@online_transfer_bp.get("/<int:order_id>/payment-details")
@require_auth
@require_admin
def payment_details(order_id: int):
    try:
        return success(payment_service.get_payment_details(order_id))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get payment details")


@online_transfer_bp.patch("/<int:order_id>/payment-confirmation")
@require_auth
@require_admin
def payment_confirmation(order_id: int):
    """
    Request body:
        {"decision": "accept" | "reject", "note"?: "..."}
    or the older form:
        {"confirmed": true | false, "notes"?: "..."}

    Accepting marks payment verified; the order stays PENDING until an
    admin moves it to PROCESSING.
    """
    try:
        data = json_body()
        decision = payment_service.normalize_decision(data.get("decision"), data.get("confirmed"))
        order = payment_service.confirm_payment(
            order_id,
            decision=decision,
            note=data.get("note", data.get("notes")),
            admin=g.current_user,
        )
        message = "Payment confirmed" if decision == "accept" else "Payment rejected"
        return success(order_view(order, include_customer=True), message=message)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to record payment decision")
