# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Customers self-register from the storefront; admins are created from the
CLI (`flask users create-admin`).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, 12 in production)
- Minimum 8 characters with at least one letter and one digit
- Emails are stored lower-cased; lookups are case-insensitive
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES, SUPPORTED_LOCALES
from ricemart.time_utils import utcnow
from ricemart.validation import ConflictError, ValidationError


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash with the configured cost."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_RE.match(value):
        raise ValidationError("A valid email is required", [{"field": "email", "message": "is invalid"}])
    return value


def create_user(
    *,
    email: str,
    password: str,
    name: str,
    role: str = "customer",
    phone: str | None = None,
    locale: str = "en",
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email/name/role/locale
        PasswordValidationError: weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", [{"field": "name", "message": "is required"}])
    if role not in USER_ROLES:
        raise ValidationError(f"Invalid role '{role}'")
    if locale not in SUPPORTED_LOCALES:
        raise ValidationError(f"Unsupported locale '{locale}'")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email is already registered")

    user = User(
        email=email,
        name=name,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
        locale=locale,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, or None."""
    if not email or not password:
        return None

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
