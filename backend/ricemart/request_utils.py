# Overview: Request parsing shared by blueprints (JSON bodies, multipart forms, paging).

from __future__ import annotations

import json

from flask import current_app, request

from ricemart.validation import ValidationError, parse_pagination


def is_multipart() -> bool:
    return (request.mimetype or "").startswith("multipart/form-data")


def json_body(*, required: bool = True) -> dict:
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise ValidationError("Request body must be a JSON object")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def form_payload(*, json_fields: tuple[str, ...] = ()) -> dict:
    """
    Flatten request.form into a dict. Fields named in json_fields carry
    JSON text (e.g. metadata, shipping_address, items) and are decoded.
    """
    payload: dict = {}
    for key in request.form.keys():
        value = request.form.get(key)
        if key in json_fields:
            if value in (None, ""):
                continue
            try:
                value = json.loads(value)
            except ValueError:
                raise ValidationError(f"{key} must be valid JSON", [{"field": key, "message": "must be valid JSON"}])
        payload[key] = value
    return payload


def body_payload(*, json_fields: tuple[str, ...] = ()) -> dict:
    """JSON body, or the decoded multipart form when files are sent."""
    if is_multipart() or request.mimetype == "application/x-www-form-urlencoded":
        return form_payload(json_fields=json_fields)
    return json_body()


def pagination_args() -> tuple[int, int]:
    return parse_pagination(
        request.args,
        default_limit=current_app.config.get("DEFAULT_PAGE_SIZE", 20),
        max_limit=current_app.config.get("MAX_PAGE_SIZE", 100),
    )


def uploaded_files(*field_names: str) -> list:
    files = []
    for name in field_names:
        files.extend(f for f in request.files.getlist(name) if f and f.filename)
    return files
