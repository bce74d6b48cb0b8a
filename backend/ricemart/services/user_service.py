# Overview: Service-layer operations for admin user management.

"""
User Management (admin)

- Admins list, create, update and delete customer and admin accounts
- An admin cannot demote, deactivate or delete their own account
- Deactivating a user or resetting their password revokes their sessions
- Delete is a hard delete only for users nothing refers to; users with
  orders, payment methods or admin history are deactivated instead
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import LoginAttempt, Order, OrderEvent, PaymentMethod, Refund, SessionToken, StockEntry, User
from ..models.auth import SUPPORTED_LOCALES, USER_ROLES
from ricemart.services import auth_service, session_service
from ricemart.validation import ConflictError, NotFoundError, ValidationError, coerce_bool


UPDATABLE_FIELDS = frozenset({"name", "email", "phone", "role", "locale", "is_active", "password"})


def list_users(
    *,
    search: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    """search matches name and email; role "all" or empty means any role."""
    query = db.session.query(User)

    if role and role != "all":
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
        query = query.filter(User.role == role)

    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    total = query.count()
    users = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(payload: dict) -> User:
    """Admin-created accounts default to the admin role."""
    user = auth_service.create_user(
        email=payload.get("email"),
        password=payload.get("password"),
        name=payload.get("name"),
        phone=payload.get("phone"),
        role=payload.get("role") or "admin",
        locale=payload.get("locale") or "en",
    )
    current_app.logger.info("User %s created with role %s", user.email, user.role)
    return user


def update_user(user_id: int, payload: dict, *, actor: User) -> User:
    """
    Patch semantics. `password` resets the password; `is_active=false`
    deactivates. Both revoke the user's sessions.
    """
    user = get_user(user_id)
    try:
        _apply_user_patch(user, payload, actor=actor)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("User %s updated by admin %s", user.id, actor.id)
    return user


def _apply_user_patch(user: User, payload: dict, *, actor: User) -> None:
    unknown = sorted(set(payload) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Unknown fields",
            [{"field": key, "message": "is not updatable"} for key in unknown],
        )

    if "name" in payload:
        name = str(payload["name"] or "").strip()
        if not name:
            raise ValidationError("Name is required", [{"field": "name", "message": "is required"}])
        user.name = name

    if "email" in payload:
        email = auth_service.normalize_email(payload["email"])
        if db.session.query(User.id).filter(User.email == email, User.id != user.id).first():
            raise ConflictError("Email is already registered")
        user.email = email

    if "phone" in payload:
        user.phone = str(payload["phone"] or "").strip() or None

    if "locale" in payload:
        if payload["locale"] not in SUPPORTED_LOCALES:
            raise ValidationError(f"Unsupported locale '{payload['locale']}'")
        user.locale = payload["locale"]

    if "role" in payload:
        if payload["role"] not in USER_ROLES:
            raise ValidationError(f"Invalid role '{payload['role']}'")
        if user.id == actor.id and payload["role"] != user.role:
            raise ValidationError("Cannot change your own role")
        user.role = payload["role"]

    revoke_reason = None
    if "is_active" in payload:
        is_active = coerce_bool(payload["is_active"], "is_active")
        if user.id == actor.id and not is_active:
            raise ValidationError("Cannot deactivate your own account")
        if user.is_active and not is_active:
            revoke_reason = "Account deactivated by admin"
        user.is_active = is_active

    if payload.get("password"):
        user.password_hash = auth_service.hash_password(payload["password"])
        revoke_reason = revoke_reason or "Password reset by admin"

    if revoke_reason:
        session_service.revoke_all_user_sessions(user.id, revoke_reason, commit=False)


def _has_history(user_id: int) -> bool:
    checks = (
        db.session.query(Order.id).filter(or_(Order.user_id == user_id, Order.payment_verified_by_user_id == user_id)),
        db.session.query(PaymentMethod.id).filter(PaymentMethod.user_id == user_id),
        db.session.query(StockEntry.id).filter(StockEntry.created_by_user_id == user_id),
        db.session.query(Refund.id).filter(Refund.created_by_user_id == user_id),
        db.session.query(OrderEvent.id).filter(OrderEvent.actor_user_id == user_id),
    )
    return any(query.first() is not None for query in checks)


def delete_user(user_id: int, *, actor: User) -> str:
    """Returns "deleted" or "deactivated"."""
    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("Cannot delete your own account")

    try:
        if _has_history(user.id):
            user.is_active = False
            session_service.revoke_all_user_sessions(user.id, "Account deactivated by admin", commit=False)
            result = "deactivated"
        else:
            db.session.query(SessionToken).filter_by(user_id=user.id).delete(synchronize_session=False)
            db.session.query(LoginAttempt).filter_by(user_id=user.id).update(
                {LoginAttempt.user_id: None}, synchronize_session=False,
            )
            db.session.delete(user)
            result = "deleted"
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("User %s %s by admin %s", user_id, result, actor.id)
    return result
