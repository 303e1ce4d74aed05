"""
Health check blueprint.

Endpoints:
    GET /api/health  — liveness with database round-trip
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from clearance.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/health")


@health_bp.route("", methods=["GET"])
def health():
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["storage"] = {"backend": current_app.config.get("CERTIFICATE_STORAGE", "local")}
    checks["app"] = {
        "name": "Smart Clearance",
        "testing": current_app.testing,
    }

    return jsonify({
        "success": overall,
        "status": "ok" if overall else "degraded",
        "checks": checks,
    }), 200 if overall else 503
