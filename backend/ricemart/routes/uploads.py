# Overview: Flask routes for image uploads and serving stored files.

# backend/ricemart/routes/uploads.py
"""
Uploads

AUTHENTICATED:
- POST /api/uploads                     one file in `file`, `image` or `screenshot`
- POST /api/uploads/image               one file in `image`
- POST /api/uploads/payment-screenshot  one file in `screenshot`

ADMIN:
- POST   /api/uploads/images            several files in `images`
- DELETE /api/uploads/<path>            original plus derived variants

PUBLIC:
- GET /uploads/<path>                   stored files (confined to UPLOAD_FOLDER)
"""

from flask import Blueprint, current_app, request, send_from_directory

from ..decorators import require_admin, require_auth
from ..request_utils import uploaded_files
from ..responses import DOMAIN_ERRORS, domain_error, error, internal_error, success
from ..services import upload_service


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/uploads")
media_bp = Blueprint("media", __name__)


def _single_upload(*field_names: str):
    files = uploaded_files(*field_names)
    if not files:
        return error("No file provided", 400, details=[{"field": field_names[0], "message": "is required"}])
    if len(files) > 1:
        return error("Only one file may be uploaded here", 400)
    return success(upload_service.save_image(files[0]), message="File uploaded", status=201)


@uploads_bp.post("")
@require_auth
def upload_file():
    try:
        return _single_upload("file", "image", "screenshot")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to upload file")


@uploads_bp.post("/image")
@require_auth
def upload_image():
    try:
        return _single_upload("image")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to upload image")


@uploads_bp.post("/payment-screenshot")
@require_auth
def upload_payment_screenshot():
    try:
        return _single_upload("screenshot")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to upload payment screenshot")


@uploads_bp.post("/images")
@require_auth
@require_admin
def upload_images():
    try:
        saved = upload_service.save_images(uploaded_files("images"))
        return success(saved, message=f"{len(saved)} files uploaded", status=201)
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to upload images")


@uploads_bp.delete("/<path:filename>")
@require_auth
@require_admin
def delete_file(filename: str):
    try:
        removed = upload_service.delete_upload(filename)
        return success({"removed": removed}, message="File deleted")
    except DOMAIN_ERRORS as e:
        return domain_error(e)
    except Exception:
        return internal_error("Failed to delete file")


@media_bp.get("/uploads/<path:filename>")
def serve_upload(filename: str):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)
