# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/ricemart/routes/auth.py
"""
Authentication API routes

- Customers self-register; admins are created with `flask users create-admin`
- Login returns an opaque bearer token (see session_service)
- Repeated failed logins for one email answer 429 until the lockout
  passes (see login_throttle_service)
"""

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..request_utils import json_body
from ..responses import DOMAIN_ERRORS, domain_error, error, internal_error, success
from ..services import auth_service, login_throttle_service, session_service
from ricemart.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, token: str, session) -> dict:
    return {
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "user": user.to_dict(),
    }


def _locked_response(seconds_remaining: int | None):
    response, status = error(
        "Account temporarily locked due to too many failed login attempts", 429,
        extra={"locked": True, "retry_after_seconds": seconds_remaining},
    )
    if seconds_remaining:
        response.headers["Retry-After"] = str(seconds_remaining)
    return response, status


@auth_bp.post("/register")
def register_route():
    """
    Customer self-registration.

    Request body: {"email", "password", "name", "phone"?, "locale"?}
    Returns 201 with a session token so the storefront is logged in at once.
    """
    try:
        data = json_body()
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            name=data.get("name"),
            phone=data.get("phone"),
            locale=(data.get("locale") or "en"),
            role="customer",
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return success(_session_payload(user, token, session), message="Registration successful", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to register user")


@auth_bp.post("/login")
def login_route():
    try:
        data = json_body()
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            return error("email and password required", 400)

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_account_locked(email)
        if is_locked:
            return _locked_response(seconds_remaining)

        user = auth_service.authenticate(email, password)
        if not user:
            failed_count = login_throttle_service.record_failed_attempt(
                email, ip_address=ip_address, user_agent=user_agent,
            )
            remaining = login_throttle_service.max_failed_attempts() - failed_count
            if remaining <= 0:
                _, seconds_remaining = login_throttle_service.is_account_locked(email)
                return _locked_response(seconds_remaining)
            if remaining <= 3:
                return error(
                    "Invalid credentials", 401,
                    extra={"warning": f"{remaining} attempts remaining before account lockout"},
                )
            return error("Invalid credentials", 401)

        login_throttle_service.record_successful_login(
            user.id, email, ip_address=ip_address, user_agent=user_agent,
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        return success(_session_payload(user, token, session), message="Login successful")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to log in")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.token)
        return success(None, message="Logged out")
    except Exception:
        return internal_error("Failed to log out")


@auth_bp.get("/me")
@require_auth
def me_route():
    return success(g.current_user.to_dict())
