"""
System health endpoint.

Checks the database and the notification/broadcast sinks so deployments can
tell a dead DB apart from a degraded side-effect pipeline.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import Product, Shop, RestockRequest, User
from ..services.notification_service import get_sinks
from shopstock.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "shops": db.session.query(Shop).count(),
            "products": db.session.query(Product).count(),
            "restock_requests": db.session.query(RestockRequest).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sinks_health() -> dict:
    try:
        sinks = get_sinks()
    except KeyError:
        return {"status": "degraded", "warning": "Side-effect sinks not initialised"}

    details = {
        "notifier": type(sinks.notifier).__name__,
        "auditor": type(sinks.auditor).__name__,
        "broadcaster": type(sinks.broadcaster).__name__,
    }
    subscriber_count = getattr(sinks.broadcaster, "subscriber_count", None)
    if subscriber_count is not None:
        details["broadcast_subscribers"] = subscriber_count
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sinks_health = check_sinks_health()

    all_checks = [database_health, sinks_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sinks": sinks_health,
        }
    }

    return response, http_status
