# Overview: Service-layer operations for login brute-force protection.

"""
Login Throttling Service

WHY: Stop password guessing against a storefront account. After too many
failed logins for one email the account is locked for a while, even for
the right password.

RULES:
- Failures are counted per normalized email inside LOGIN_LOCKOUT_WINDOW_MINUTES
- A successful login resets the count (only failures after it are counted)
- At LOGIN_MAX_FAILED_ATTEMPTS the email is locked until
  LOGIN_LOCKOUT_MINUTES after the most recent failure
- Unknown emails are throttled the same way, so lockout does not reveal
  whether an account exists
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import LoginAttempt, User
from ricemart.time_utils import utcnow


def normalize_identifier(identifier: str | None) -> str:
    return (identifier or "").strip().lower()[:255]


def max_failed_attempts() -> int:
    return int(current_app.config.get("LOGIN_MAX_FAILED_ATTEMPTS", 10))


def _lockout_window() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("LOGIN_LOCKOUT_WINDOW_MINUTES", 15)))


def _lockout_duration() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("LOGIN_LOCKOUT_MINUTES", 15)))


def _recent_failures_query(identifier: str):
    query = db.session.query(LoginAttempt).filter(
        LoginAttempt.identifier == identifier,
        LoginAttempt.success.is_(False),
        LoginAttempt.occurred_at >= utcnow() - _lockout_window(),
    )

    last_success = (
        db.session.query(func.max(LoginAttempt.occurred_at))
        .filter(LoginAttempt.identifier == identifier, LoginAttempt.success.is_(True))
        .scalar()
    )
    if last_success is not None:
        query = query.filter(LoginAttempt.occurred_at > last_success)
    return query


def get_recent_failed_attempts(identifier: str) -> int:
    return _recent_failures_query(normalize_identifier(identifier)).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Returns:
    - (True, seconds_remaining) while locked
    - (False, None) otherwise
    """
    identifier = normalize_identifier(identifier)
    failures = _recent_failures_query(identifier)
    if failures.count() < max_failed_attempts():
        return False, None

    most_recent = failures.order_by(LoginAttempt.occurred_at.desc(), LoginAttempt.id.desc()).first()
    lockout_end = most_recent.occurred_at + _lockout_duration()
    now = utcnow()
    if now < lockout_end:
        return True, max(int((lockout_end - now).total_seconds()), 1)
    return False, None


def _record(identifier: str, *, success: bool, user_id: int | None, ip_address: str | None, user_agent: str | None) -> None:
    db.session.add(LoginAttempt(
        identifier=identifier,
        user_id=user_id,
        success=success,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
        occurred_at=utcnow(),
    ))
    db.session.commit()


def record_failed_attempt(
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> int:
    """Record a failed login; returns the failure count now in effect."""
    identifier = normalize_identifier(identifier)
    user = db.session.query(User.id).filter(User.email == identifier).first()
    _record(identifier, success=False, user_id=user.id if user else None, ip_address=ip_address, user_agent=user_agent)

    count = _recent_failures_query(identifier).count()
    if count >= max_failed_attempts():
        current_app.logger.warning("Login locked for %s after %s failed attempts", identifier, count)
    return count


def record_successful_login(
    user_id: int,
    identifier: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    _record(normalize_identifier(identifier), success=True, user_id=user_id, ip_address=ip_address, user_agent=user_agent)
