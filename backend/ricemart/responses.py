# Overview: JSON envelope helpers shared by every blueprint.

"""
Envelope:
    success: {"success": true,  "data": ..., "message"?: str, "pagination"?: {...}}
    failure: {"success": false, "error": str, "details"?: [{field, message}]}

pagination: {"page", "limit", "total", "totalPages"}
"""

from __future__ import annotations

import math

from flask import current_app, jsonify

from ricemart.services.catalog_service import ProductUnavailableError
from ricemart.services.lifecycle_service import InvalidTransitionError
from ricemart.services.payment_service import OrderNotEditableError
from ricemart.services.upload_service import UploadError
from ricemart.validation import ConflictError, NotFoundError, ValidationError


# Known domain errors -> HTTP status. Checked in order, so subclasses first.
DOMAIN_ERROR_STATUS = (
    (ValidationError, 400),
    (ProductUnavailableError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (OrderNotEditableError, 409),
    (ConflictError, 409),
)

DOMAIN_ERRORS = tuple(cls for cls, _ in DOMAIN_ERROR_STATUS) + (UploadError,)


def success(data=None, *, message: str | None = None, status: int = 200, pagination: dict | None = None):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def error(message: str, status: int, *, details: list | None = None, extra: dict | None = None):
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    if extra:
        body.update(extra)
    return jsonify(body), status


def pagination_meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def domain_error(exc: Exception):
    """Translate a service-layer exception into the error envelope."""
    if isinstance(exc, UploadError):
        if exc.status_code >= 500:
            return error("Failed to store uploaded file", exc.status_code)
        return error(str(exc), exc.status_code)

    for cls, status in DOMAIN_ERROR_STATUS:
        if isinstance(exc, cls):
            details = getattr(exc, "details", None)
            return error(str(exc), status, details=details)

    return internal_error("Unhandled domain error")


def internal_error(log_message: str):
    """Log the active exception with traceback; the caller sees a generic message."""
    current_app.logger.exception(log_message)
    return error("Internal server error", 500)
