# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/ricemart/routes/admin.py
"""
Admin routes

- GET /api/admin/dashboard            headline numbers
- GET /api/admin/inventory            per-product stock valuation
- /api/admin/users                    user management (list, create, update, delete)

All endpoints require an admin session.
"""

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..request_utils import json_body, pagination_args
from ..responses import DOMAIN_ERRORS, domain_error, internal_error, pagination_meta, success
from ..services import reporting_service, user_service
from ricemart.validation import parse_optional_bool


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/dashboard")
@require_auth
@require_admin
def dashboard():
    try:
        return success(reporting_service.dashboard_summary())
    except Exception:
        return internal_error("Failed to build dashboard")


@admin_bp.get("/inventory")
@require_auth
@require_admin
def inventory():
    try:
        return success(reporting_service.inventory_summary())
    except Exception:
        return internal_error("Failed to build inventory summary")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    """
    Query params:
    - page, limit
    - search: substring of name or email
    - role: customer | admin | all
    - is_active: true | false
    """
    try:
        page, limit = pagination_args()
        users, total = user_service.list_users(
            search=request.args.get("search"),
            role=request.args.get("role"),
            is_active=parse_optional_bool(request.args.get("is_active"), "is_active"),
            page=page,
            limit=limit,
        )
        return success([u.to_dict() for u in users], pagination=pagination_meta(page, limit, total))
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to list users")


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_admin
def get_user(user_id: int):
    try:
        return success(user_service.get_user(user_id).to_dict())
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to get user")


@admin_bp.post("/users")
@require_auth
@require_admin
def create_user():
    """
    Request body:
    {"email", "password", "name", "role"? (default admin), "phone"?, "locale"?}
    """
    try:
        user = user_service.create_user(json_body())
        return success(user.to_dict(), message="User created", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to create user")


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    """
    Any of: name, email, phone, role, locale, is_active, password.
    Deactivation and password resets log the user out everywhere.
    """
    try:
        user = user_service.update_user(user_id, json_body(), actor=g.current_user)
        return success(user.to_dict(), message="User updated")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to update user")


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_admin
def delete_user(user_id: int):
    try:
        result = user_service.delete_user(user_id, actor=g.current_user)
        return success({"id": user_id, "result": result}, message=f"User {result}")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to delete user")
