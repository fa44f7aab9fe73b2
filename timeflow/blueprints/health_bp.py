"""
Health probes (no authentication).

Endpoints:
    GET /api/v1/health/live   process is up; never touches the database
    GET /api/v1/health/ready  database reachable and the process-tracking
                              tables exist (503 until migrations have run)
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from timeflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

REQUIRED_TABLES = (
    "users",
    "projects",
    "project_assignments",
    "processes",
    "process_activities",
    "process_assignments",
)


@health_bp.route("/live", methods=["GET"])
def live():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Database round-trip plus schema presence."""
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
        tables = set(sa_inspect(db.engine).get_table_names())
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Readiness probe failed: %s", exc)
        return jsonify({"status": "unavailable", "database": "error", "detail": str(exc)}), 503

    latency_ms = round((time.perf_counter() - started) * 1000, 1)
    missing = [t for t in REQUIRED_TABLES if t not in tables]
    if missing:
        logger.warning("Readiness probe: missing tables %s", missing)
        return jsonify({"status": "unavailable", "database": "ok", "missing_tables": missing}), 503

    return jsonify({"status": "ready", "database": "ok", "latency_ms": latency_ms}), 200
