# Overview: Flask API routes for a customer's own payment methods.

# backend/ricemart/routes/payment_methods.py
"""
Customer payment methods (scoped to the logged-in user; others' answer 404)

- GET    /api/payment-methods          ?include_inactive=true
- GET    /api/payment-methods/types    supported wallet/bank types with labels
- POST   /api/payment-methods
- GET    /api/payment-methods/<id>
- PATCH  /api/payment-methods/<id>
- DELETE /api/payment-methods/<id>     deactivates when orders reference it
"""

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..request_utils import json_body
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import payment_account_service
from ricemart.validation import parse_optional_bool


payment_methods_bp = Blueprint("payment_methods", __name__, url_prefix="/api/payment-methods")


@payment_methods_bp.get("")
@require_auth
def list_methods():
    try:
        include_inactive = parse_optional_bool(request.args.get("include_inactive"), "include_inactive") or False
        methods = payment_account_service.list_payment_methods(g.current_user, include_inactive=include_inactive)
        return success([m.to_dict() for m in methods])
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list payment methods")


@payment_methods_bp.get("/types")
def list_types():
    return success(payment_account_service.payment_account_types())


@payment_methods_bp.post("")
@require_auth
def create_method():
    """Request body: {"type", "account_name", "account_number", "is_active"?}"""
    try:
        method = payment_account_service.create_payment_method(g.current_user, json_body())
        return success(method.to_dict(), message="Payment method added", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create payment method")


@payment_methods_bp.get("/<int:method_id>")
@require_auth
def get_method(method_id: int):
    try:
        return success(payment_account_service.get_payment_method(method_id, g.current_user).to_dict())
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get payment method")


@payment_methods_bp.patch("/<int:method_id>")
@require_auth
def update_method(method_id: int):
    try:
        method = payment_account_service.update_payment_method(method_id, g.current_user, json_body())
        return success(method.to_dict(), message="Payment method updated")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to update payment method")


@payment_methods_bp.delete("/<int:method_id>")
@require_auth
def delete_method(method_id: int):
    try:
        result = payment_account_service.delete_payment_method(method_id, g.current_user)
        return success({"id": method_id, "result": result}, message=f"Payment method {result}")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to delete payment method")
