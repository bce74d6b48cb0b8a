# Overview: Service-layer operations for uploaded images; owns the on-disk layout.

"""
Upload storage

LAYOUT:
    UPLOAD_FOLDER/YYYY/MM/DD/<uuid>.<ext>            original
    UPLOAD_FOLDER/YYYY/MM/DD/<uuid>_processed.<ext>  display variant
    UPLOAD_FOLDER/YYYY/MM/DD/<uuid>_thumb.<ext>      thumbnail variant

Public URLs mirror the layout under UPLOAD_URL_PREFIX (/uploads/...).

Variants are produced by IMAGE_PROCESSOR(original, processed, thumb).
Until IMAGE_PROCESSOR is configured the _processed and _thumb files are
placeholders: plain byte copies of the original, with no resizing or
recompression. A thumbnail URL therefore serves the full-size image.
The variant URLs always resolve either way.

Callers that store a URL in the database upload first and call
delete_upload() if their DB write fails, so no row ever references a
missing file.
"""

from __future__ import annotations

import os
import shutil
import uuid
from datetime import datetime

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.security import safe_join

from ricemart.time_utils import utcnow
from ricemart.validation import NotFoundError


VARIANT_SUFFIXES = ("_processed", "_thumb")


class UploadError(Exception):
    """
    Upload could not be accepted or stored.

    status_code 400: the client sent an unacceptable file
    status_code 500: storage I/O failed
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def upload_url_prefix() -> str:
    return current_app.config.get("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")


def _url_for(relative_path: str) -> str:
    return f"{upload_url_prefix()}/{relative_path}"


def _variant_path(relative_path: str, suffix: str) -> str:
    stem, ext = os.path.splitext(relative_path)
    return f"{stem}{suffix}{ext}"


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def validate_image(file: FileStorage) -> tuple[str, bytes]:
    """Return (extension, content) or raise UploadError(400)."""
    if file is None or not file.filename:
        raise UploadError("No file provided")

    allowed = current_app.config["ALLOWED_IMAGE_EXTENSIONS"]
    ext = file_extension(file.filename)
    if ext not in allowed:
        raise UploadError(f"File type not allowed. Allowed: {', '.join(sorted(allowed))}")

    if file.mimetype and not file.mimetype.startswith("image/"):
        raise UploadError("Only image uploads are accepted")

    max_bytes = current_app.config["MAX_UPLOAD_BYTES"]
    content = file.read(max_bytes + 1)
    if not content:
        raise UploadError("Uploaded file is empty")
    if len(content) > max_bytes:
        raise UploadError(f"File must be under {max_bytes // (1024 * 1024)}MB")

    return ext, content


def _make_variants(original: str) -> None:
    processor = current_app.config.get("IMAGE_PROCESSOR")
    processed = _variant_path(original, "_processed")
    thumb = _variant_path(original, "_thumb")
    if processor is not None:
        processor(original, processed, thumb)
        return
    shutil.copyfile(original, processed)
    shutil.copyfile(original, thumb)


def save_image(file: FileStorage, *, now: datetime | None = None) -> dict:
    """
    Validate and store one image plus its variants.

    Returns {"url", "processedUrl", "thumbnailUrl", "filename", "size"}.
    """
    ext, content = validate_image(file)

    now = now or utcnow()
    relative = f"{now:%Y/%m/%d}/{uuid.uuid4().hex}.{ext}"
    absolute = os.path.join(_upload_root(), *relative.split("/"))

    try:
        os.makedirs(os.path.dirname(absolute), exist_ok=True)
        with open(absolute, "wb") as fh:
            fh.write(content)
        _make_variants(absolute)
    except OSError:
        current_app.logger.exception("Failed to store upload %s", relative)
        _remove_files(relative)
        raise UploadError("Failed to store uploaded file", status_code=500)

    current_app.logger.info("Stored upload %s (%s bytes)", relative, len(content))
    return {
        "url": _url_for(relative),
        "processedUrl": _url_for(_variant_path(relative, "_processed")),
        "thumbnailUrl": _url_for(_variant_path(relative, "_thumb")),
        "filename": relative,
        "size": len(content),
    }


def save_images(files: list[FileStorage]) -> list[dict]:
    """All-or-nothing: a failure removes the files already written."""
    files = [f for f in files if f is not None and f.filename]
    if not files:
        raise UploadError("No files provided")
    max_files = current_app.config["MAX_UPLOAD_FILES"]
    if len(files) > max_files:
        raise UploadError(f"At most {max_files} files per upload")

    saved: list[dict] = []
    try:
        for f in files:
            saved.append(save_image(f))
    except UploadError:
        for item in saved:
            delete_upload(item["url"], missing_ok=True)
        raise
    return saved


def relative_upload_path(path_or_url: str) -> str:
    """
    Accepts "/uploads/2024/01/31/x.png", "2024/01/31/x.png" or a full URL
    and returns the path relative to UPLOAD_FOLDER.
    """
    value = (path_or_url or "").strip()
    prefix = upload_url_prefix() + "/"
    if "://" in value:
        value = value.split("://", 1)[1]
        value = value[value.find("/"):] if "/" in value else ""
    if value.startswith(prefix):
        value = value[len(prefix):]
    return value.lstrip("/")


def resolve_upload_path(relative_path: str) -> str:
    """Absolute path inside UPLOAD_FOLDER, or UploadError for traversal attempts."""
    if not relative_path:
        raise UploadError("Filename is required")
    resolved = safe_join(_upload_root(), relative_path)
    if resolved is None:
        raise UploadError("Invalid filename")
    return resolved


def _remove_files(relative_path: str) -> list[str]:
    removed = []
    for rel in (relative_path, *(_variant_path(relative_path, s) for s in VARIANT_SUFFIXES)):
        path = resolve_upload_path(rel)
        if os.path.isfile(path):
            os.remove(path)
            removed.append(rel)
    return removed


def delete_upload(path_or_url: str, *, missing_ok: bool = False) -> list[str]:
    """
    Remove an original and its derived variants. Returns removed relative paths.

    Raises NotFoundError when nothing existed (unless missing_ok).
    """
    relative = relative_upload_path(path_or_url)
    for suffix in VARIANT_SUFFIXES:
        stem, ext = os.path.splitext(relative)
        if stem.endswith(suffix):
            relative = stem[: -len(suffix)] + ext
            break

    try:
        removed = _remove_files(relative)
    except OSError:
        current_app.logger.exception("Failed to delete upload %s", relative)
        raise UploadError("Failed to delete file", status_code=500)

    if not removed and not missing_ok:
        raise NotFoundError("File not found")
    if removed:
        current_app.logger.info("Deleted upload %s (%d files)", relative, len(removed))
    return removed


def discard_uploads(urls: list[str]) -> None:
    """Best-effort cleanup after a failed DB write; the original error wins."""
    for url in urls:
        try:
            delete_upload(url, missing_ok=True)
        except UploadError:
            current_app.logger.warning("Could not clean up upload %s", url)
