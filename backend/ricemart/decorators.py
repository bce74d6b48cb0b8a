# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .responses import error
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets for the duration of this request only:
    - g.current_user: the authenticated User
    - g.session_context: the SessionContext (user + session row)
    - g.token: the raw bearer token (used by logout)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return error("Authentication required", 401)

        context = session_service.validate_session(token)
        if not context:
            return error("Invalid or expired token", 401)

        g.current_user = context.user
        g.session_context = context
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Identify the caller when a valid token is sent; otherwise continue
    anonymously with g.current_user = None. Used by public catalog reads
    that show admins more.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        token = _bearer_token()
        if token:
            context = session_service.validate_session(token)
            if context:
                g.current_user = context.user
                g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to be an admin. Stack under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return error("Authentication required", 401)
        if not user.is_admin:
            return error("Admin access required", 403)
        return f(*args, **kwargs)

    return decorated_function


def current_user_is_admin() -> bool:
    user = getattr(g, "current_user", None)
    return bool(user is not None and user.is_admin)
