"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.actor.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  g.actor (services.permission.Actor)
  2. No / invalid token                   →  g.actor = None; blueprints answer 401

Role and department claims are turned into capabilities once, here; nothing
downstream inspects raw claim strings.
"""

import logging

import jwt as pyjwt
from flask import g, request

from rfp_pipeline.services.jwt_service import decode_access_token
from rfp_pipeline.services.permission import Actor

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            g.auth_error = "Authorization header with Bearer token is required"
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.actor = Actor.from_claims(payload)
        except pyjwt.ExpiredSignatureError:
            g.auth_error = "Token has expired"
        except pyjwt.InvalidTokenError:
            g.auth_error = "Invalid token"
        except ValueError:
            logger.warning("Token with unknown role rejected", extra={"path": path})
            g.auth_error = "Unknown role in token"
