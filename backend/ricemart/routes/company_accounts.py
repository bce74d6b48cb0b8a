# Overview: Flask API routes for company payment accounts (transfer destinations).

# backend/ricemart/routes/company_accounts.py
"""
Company payment accounts

PUBLIC:
- GET /api/company-accounts                 active accounts (checkout picker)

ADMIN:
- GET    /api/company-accounts/admin        ?include_inactive=true
- POST   /api/company-accounts/admin
- GET    /api/company-accounts/admin/<id>
- PATCH  /api/company-accounts/admin/<id>
- DELETE /api/company-accounts/admin/<id>   deactivates when orders reference it
"""

from flask import Blueprint, request

from ..decorators import require_admin, require_auth
from ..request_utils import json_body
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, success
from ..services import payment_account_service
from ricemart.validation import parse_optional_bool


company_accounts_bp = Blueprint("company_accounts", __name__, url_prefix="/api/company-accounts")


@company_accounts_bp.get("")
def list_public_accounts():
    try:
        accounts = payment_account_service.list_company_accounts(account_type=request.args.get("type"))
        return success([a.to_dict(public=True) for a in accounts])
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list company accounts")


@company_accounts_bp.get("/admin")
@require_auth
@require_admin
def list_accounts():
    try:
        include_inactive = parse_optional_bool(request.args.get("include_inactive"), "include_inactive") or False
        accounts = payment_account_service.list_company_accounts(
            include_inactive=include_inactive, account_type=request.args.get("type"),
        )
        return success([a.to_dict() for a in accounts])
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list company accounts")


@company_accounts_bp.post("/admin")
@require_auth
@require_admin
def create_account():
    """
    Request body:
    {
        "name": "KBZ Main",
        "type": "KBZ_PAY",
        "account_name": "Golden Rice Co.",
        "account_number": "09-123456789",
        "details"?: {"branch", "phone", "swift_code", "notes"},
        "is_active"?: true
    }
    """
    try:
        account = payment_account_service.create_company_account(json_body())
        return success(account.to_dict(), message="Company account created", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create company account")


@company_accounts_bp.get("/admin/<int:account_id>")
@require_auth
@require_admin
def get_account(account_id: int):
    try:
        return success(payment_account_service.get_company_account(account_id).to_dict())
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get company account")


@company_accounts_bp.patch("/admin/<int:account_id>")
@require_auth
@require_admin
def update_account(account_id: int):
    """`details` keys are merged; a blank value removes that key."""
    try:
        account = payment_account_service.update_company_account(account_id, json_body())
        return success(account.to_dict(), message="Company account updated")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to update company account")


@company_accounts_bp.delete("/admin/<int:account_id>")
@require_auth
@require_admin
def delete_account(account_id: int):
    try:
        result = payment_account_service.delete_company_account(account_id)
        return success({"id": account_id, "result": result}, message=f"Company account {result}")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to delete company account")
