# backend/backoffice/routes/system.py
"""
System health endpoint.

Checks the two dependencies every request path needs: the database and the
configured session store.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Order, Variant
from ..services import session_service
from backoffice.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        variant_count = db.session.query(Variant).count()
        order_count = db.session.query(Order).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "variants": variant_count,
                "orders": order_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_store_health() -> dict:
    start_time = time.time()
    try:
        store = session_service.get_session_store()
        active_sessions = store.count_active()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "backend": current_app.config.get("SESSION_STORE"),
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session store error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_store_health()

    all_checks = [database_health, session_health]
    unhealthy = any(check["status"] == "unhealthy" for check in all_checks)

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "success": not unhealthy,
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_store": session_health,
        }
    }

    return response, 503 if unhealthy else 200
