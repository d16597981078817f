"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in rfp_pipeline/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from rfp_pipeline.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - RFP lifecycle:       60/minute (transitions, quotation, work order)
        - Pricing decisions:   200/minute (snapshot reads/writes from the UI)

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("rfp_bp")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("pricing_decision_bp")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    app.logger.info(
        "Rate limiter configured — rfp: %s, pricing decisions: %s", WRITE_LIMIT, READ_LIMIT
    )
