"""
Route guard — requires an authenticated actor on g.actor.

Capability checks themselves happen inside the services (each transition
declares its own capability); this decorator only turns a missing or
invalid bearer token into a 401.

Usage:
    @rfp_bp.route("/rfps/<int:rfp_request_id>/approve", methods=["POST"])
    @require_actor
    def approve(rfp_request_id):
        actor = g.actor
        ...
"""

import functools
import logging

from flask import g, request

from rfp_pipeline.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_actor(f):
    """Decorator: reject the request with 401 unless the JWT middleware resolved an actor."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            reason = getattr(g, "auth_error", None) or "Authentication required"
            logger.info("Unauthenticated request to %s: %s", request.path, reason)
            return api_error(E.UNAUTHORIZED, reason)
        return f(*args, **kwargs)

    return decorated
