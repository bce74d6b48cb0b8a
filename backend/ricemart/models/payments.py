from __future__ import annotations

from ..extensions import db
from ricemart.time_utils import to_utc_z, utcnow


PAYMENT_ACCOUNT_TYPES = ("AYA_BANK", "KBZ_BANK", "AYA_PAY", "KBZ_PAY")

PAYMENT_ACCOUNT_LABELS = {
    "AYA_BANK": "AYA Bank",
    "KBZ_BANK": "KBZ Bank",
    "AYA_PAY": "AYA Pay",
    "KBZ_PAY": "KBZ Pay",
}

# Keys accepted inside CompanyPaymentAccount.details
COMPANY_ACCOUNT_DETAIL_KEYS = ("branch", "phone", "swift_code", "notes")


class PaymentMethod(db.Model):
    """A customer's saved bank account or wallet, at most one active per type."""
    __tablename__ = "payment_methods"
    __table_args__ = (
        db.Index("ix_payment_methods_user_type", "user_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", backref=db.backref("payment_methods", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "display_name": PAYMENT_ACCOUNT_LABELS.get(self.type, self.type),
            "account_name": self.account_name,
            "account_number": self.account_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CompanyPaymentAccount(db.Model):
    """
    Business-owned transfer destination shown to customers at checkout.

    Orders keep referencing an account after it is retired, so accounts
    with order history are deactivated rather than deleted.
    """
    __tablename__ = "company_payment_accounts"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_company_payment_accounts_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self, *, public: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "display_name": PAYMENT_ACCOUNT_LABELS.get(self.type, self.type),
            "account_name": self.account_name,
            "account_number": self.account_number,
            "details": dict(self.details or {}),
        }
        if public:
            return data
        data.update({
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data
