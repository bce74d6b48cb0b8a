# backend/ricemart/routes/system.py
"""System health endpoint for load balancers and deploy checks."""

import time

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..responses import error, success
from ricemart.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }
    return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2)}


@system_bp.get("/health")
def health():
    database = check_database_health()
    data = {
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    if database["status"] != "healthy":
        return error("Service unhealthy", 503, details=[{"field": "database", "message": database.get("error")}])
    return success(data)
