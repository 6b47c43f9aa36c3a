"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in checklist_automation/__init__.py with no
default limits; this module applies granular limits per blueprint.

Usage:
    from checklist_automation.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Completion API:  120/minute  (checklist toggles + rule admin)

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("completion")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    app.logger.info("Rate limiter configured, completion: %s", WRITE_LIMIT)
