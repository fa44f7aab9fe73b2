"""
JWT Auth Middleware — resolves the Bearer token into ``g.caller``.

Every ``/api/v1/*`` request except the skip list must carry
``Authorization: Bearer <token>``; missing, expired or malformed tokens and
unknown role claims are answered with 401 before the view runs.

    g.caller = Caller(user_id, role, area_id)
"""

import logging

import jwt as pyjwt
from flask import g, request

from timeflow.models.user import Role
from timeflow.services.jwt_service import decode_access_token
from timeflow.services.permission_service import Caller
from timeflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def caller_from_payload(payload: dict) -> Caller:
    """Build a Caller from verified claims. Raises ValueError on bad claims."""
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError) as exc:
        raise ValueError("Token has no subject") from exc
    role = Role.parse(payload.get("role"))
    area_id = payload.get("area_id")
    return Caller(user_id=user_id, role=role, area_id=int(area_id) if area_id is not None else None)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.caller = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Authentication required")

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            g.caller = caller_from_payload(payload)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token expired")
        except (pyjwt.InvalidTokenError, ValueError) as exc:
            logger.info("Rejected token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")
        return None
