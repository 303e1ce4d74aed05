"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in clearance/__init__.py with no default limits; this module
attaches limits once blueprints are registered.

Usage:
    from clearance.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth / signup:   SIGNUP_RATE_LIMIT (default 5 per hour)
        - Write endpoints: 60/minute
        - Health check:    exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    signup_limit = app.config.get("SIGNUP_RATE_LIMIT", "5 per hour")
    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(signup_limit)(bp)

    for bp_name in ("request_bp", "admin_bp", "comment_bp", "certificate_bp",
                    "escalation_bp", "notification_bp", "graduation_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute")(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — auth: %s, api: 60/min", signup_limit)
