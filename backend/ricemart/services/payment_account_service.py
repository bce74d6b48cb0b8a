# Overview: Service-layer operations for customer payment methods and company transfer accounts.

"""
Payment Accounts

Customer payment methods:
- owned by one user; other users get NotFound
- at most one ACTIVE method per type per user
- referenced by orders -> deactivated on delete; otherwise deleted

Company payment accounts (admin):
- unique name
- details (branch, phone, swift_code, notes) are merged on update
- referenced by orders -> deactivated on delete; otherwise deleted
- public list shows active accounts only
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CompanyPaymentAccount, Order, PaymentMethod, User
from ..models.payments import COMPANY_ACCOUNT_DETAIL_KEYS, PAYMENT_ACCOUNT_LABELS, PAYMENT_ACCOUNT_TYPES
from ricemart.services.concurrency import run_in_transaction
from ricemart.validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)


PAYMENT_METHOD_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"type", "account_name", "account_number", "is_active"}),
    required_on_create=frozenset({"type", "account_name", "account_number"}),
)

COMPANY_ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "type", "account_name", "account_number", "details", "is_active"}),
    required_on_create=frozenset({"name", "type", "account_name", "account_number"}),
)


def payment_account_types() -> list[dict]:
    return [{"type": t, "display_name": PAYMENT_ACCOUNT_LABELS[t]} for t in PAYMENT_ACCOUNT_TYPES]


def _normalize_type(patch: dict) -> None:
    if "type" in patch:
        value = (patch["type"] or "").upper()
        if value not in PAYMENT_ACCOUNT_TYPES:
            raise ValidationError(
                f"type must be one of: {', '.join(PAYMENT_ACCOUNT_TYPES)}",
                [{"field": "type", "message": "is invalid"}],
            )
        patch["type"] = value


def _normalize_details(raw, existing: dict | None = None) -> dict:
    if raw is None:
        return dict(existing or {})
    if not isinstance(raw, dict):
        raise ValidationError("details must be an object", [{"field": "details", "message": "must be an object"}])
    unknown = [k for k in raw if k not in COMPANY_ACCOUNT_DETAIL_KEYS]
    if unknown:
        raise ValidationError(
            f"Unknown detail fields: {', '.join(sorted(unknown))}",
            [{"field": f"details.{k}", "message": "is not allowed"} for k in sorted(unknown)],
        )
    merged = dict(existing or {})
    for key, value in raw.items():
        if value is None or str(value).strip() == "":
            merged.pop(key, None)
        else:
            merged[key] = str(value).strip()[:255]
    return merged


# =============================================================================
# CUSTOMER PAYMENT METHODS
# =============================================================================

def list_payment_methods(user: User, *, include_inactive: bool = False) -> list[PaymentMethod]:
    query = db.session.query(PaymentMethod).filter_by(user_id=user.id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(PaymentMethod.created_at.asc(), PaymentMethod.id.asc()).all()


def get_payment_method(method_id: int, user: User) -> PaymentMethod:
    method = db.session.get(PaymentMethod, method_id)
    if method is None or method.user_id != user.id:
        raise NotFoundError("Payment method not found")
    return method


def _ensure_single_active_type(user_id: int, method_type: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(PaymentMethod.id).filter_by(user_id=user_id, type=method_type, is_active=True)
    if exclude_id is not None:
        query = query.filter(PaymentMethod.id != exclude_id)
    if query.first():
        label = PAYMENT_ACCOUNT_LABELS.get(method_type, method_type)
        raise ConflictError(f"You already have an active {label} payment method")


def create_payment_method(user: User, payload: dict) -> PaymentMethod:
    patch = validate_payload(model=PaymentMethod, payload=payload, policy=PAYMENT_METHOD_POLICY, partial=False)
    _normalize_type(patch)
    patch.setdefault("is_active", True)
    if patch["is_active"]:
        _ensure_single_active_type(user.id, patch["type"])

    def _op():
        method = PaymentMethod(user_id=user.id, **patch)
        db.session.add(method)
        return method

    return run_in_transaction(_op)


def update_payment_method(method_id: int, user: User, payload: dict) -> PaymentMethod:
    method = get_payment_method(method_id, user)
    patch = validate_payload(model=PaymentMethod, payload=payload, policy=PAYMENT_METHOD_POLICY, partial=True)
    _normalize_type(patch)

    new_type = patch.get("type", method.type)
    new_active = patch.get("is_active", method.is_active)
    if new_active:
        _ensure_single_active_type(user.id, new_type, exclude_id=method.id)

    def _op():
        for key, value in patch.items():
            setattr(method, key, value)
        return method

    return run_in_transaction(_op)


def delete_payment_method(method_id: int, user: User) -> str:
    """Returns "deleted" or "deactivated" (when orders reference it)."""
    method = get_payment_method(method_id, user)
    referenced = db.session.query(Order.id).filter_by(payment_method_id=method.id).first() is not None

    def _op():
        if referenced:
            method.is_active = False
            return "deactivated"
        db.session.delete(method)
        return "deleted"

    return run_in_transaction(_op)


# =============================================================================
# COMPANY PAYMENT ACCOUNTS
# =============================================================================

def list_company_accounts(*, include_inactive: bool = False, account_type: str | None = None) -> list[CompanyPaymentAccount]:
    query = db.session.query(CompanyPaymentAccount)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    if account_type:
        query = query.filter_by(type=account_type.strip().upper())
    return query.order_by(CompanyPaymentAccount.type.asc(), CompanyPaymentAccount.name.asc()).all()


def get_company_account(account_id: int) -> CompanyPaymentAccount:
    account = db.session.get(CompanyPaymentAccount, account_id)
    if account is None:
        raise NotFoundError("Company payment account not found")
    return account


def _ensure_unique_name(name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(CompanyPaymentAccount.id).filter(CompanyPaymentAccount.name == name)
    if exclude_id is not None:
        query = query.filter(CompanyPaymentAccount.id != exclude_id)
    if query.first():
        raise ConflictError(f"A company account named '{name}' already exists")


def create_company_account(payload: dict) -> CompanyPaymentAccount:
    patch = validate_payload(model=CompanyPaymentAccount, payload=payload, policy=COMPANY_ACCOUNT_POLICY, partial=False)
    _normalize_type(patch)
    patch["details"] = _normalize_details(patch.get("details"))
    _ensure_unique_name(patch["name"])

    def _op():
        account = CompanyPaymentAccount(**patch)
        db.session.add(account)
        return account

    account = run_in_transaction(_op)
    current_app.logger.info("Company payment account %s (%s) created", account.id, account.name)
    return account


def update_company_account(account_id: int, payload: dict) -> CompanyPaymentAccount:
    account = get_company_account(account_id)
    patch = validate_payload(model=CompanyPaymentAccount, payload=payload, policy=COMPANY_ACCOUNT_POLICY, partial=True)
    _normalize_type(patch)
    if "details" in patch:
        patch["details"] = _normalize_details(patch["details"], account.details)
    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=account.id)

    def _op():
        for key, value in patch.items():
            setattr(account, key, value)
        return account

    return run_in_transaction(_op)


def delete_company_account(account_id: int) -> str:
    """
    Accounts with order history are deactivated so those orders keep
    resolving their transfer destination. Returns "deleted" or "deactivated".
    """
    account = get_company_account(account_id)
    referenced = db.session.query(Order.id).filter_by(company_account_id=account.id).first() is not None

    def _op():
        if referenced:
            account.is_active = False
            return "deactivated"
        db.session.delete(account)
        return "deleted"

    result = run_in_transaction(_op)
    current_app.logger.info("Company payment account %s %s", account_id, result)
    return result
