"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in timeflow/__init__.py with no default limits; this module
applies limits per route category, keyed by caller when authenticated.

Usage:
    from timeflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

ASSIGNMENT_LIMIT = "30/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def caller_rate_limit_key():
    """Rate limit key: caller user id if authenticated, else remote IP."""
    caller = getattr(g, "caller", None)
    if caller is not None:
        return f"user:{caller.user_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per caller):
        - Assignment endpoints:  30/minute
        - Process endpoints:     60/minute
        - User / workload reads: 200/minute
        - Health check:          exempt

    Rate limiting is disabled in testing mode and when RATELIMIT_ENABLED is
    false.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("assignment")
    if bp:
        limiter.limit(ASSIGNMENT_LIMIT, key_func=caller_rate_limit_key)(bp)

    for bp_name in ("process", "process_activity"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=caller_rate_limit_key)(bp)

    bp = app.blueprints.get("user")
    if bp:
        limiter.limit(READ_LIMIT, key_func=caller_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — assignment: %s, process: %s, read: %s",
        ASSIGNMENT_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
