"""Authentication middleware for FastAPI.

Mutating requests (POST/PUT/PATCH/DELETE) must carry the shared password as
``Authorization: Bearer <password>``. Reads and the query endpoints are open.
A mismatch is rejected with 401 before the route runs, so no side effect
can happen on an unauthorized request.
"""

import hmac
import logging
from collections.abc import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.core.config import get_settings

logger = logging.getLogger(__name__)

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Path suffixes (after the API prefix) that never require the password
PUBLIC_ENDPOINTS = {
    "/auth/verify",
    "/query",
    "/retrieve",
}


def get_bearer_token_from_header(auth_header: str | None) -> str | None:
    """Extract the token from an 'Authorization: Bearer <token>' header."""
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def check_password(candidate: str | None) -> bool:
    """Constant-time comparison against the configured shared password.

    An unset password rejects everything.
    """
    expected = get_settings().enrich_password
    if not expected or candidate is None:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def is_public_request(method: str, path: str) -> bool:
    """Check if a request can skip authentication."""
    if method.upper() not in MUTATING_METHODS:
        return True

    prefix = get_settings().api_prefix.rstrip("/")
    if prefix and path.startswith(prefix):
        path = path[len(prefix) :]
    return path.rstrip("/") in PUBLIC_ENDPOINTS


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"success": False, "message": "Unauthorized"},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces the shared bearer password on mutating requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process the request through auth middleware."""
        if is_public_request(request.method, request.url.path):
            return await call_next(request)

        token = get_bearer_token_from_header(request.headers.get("Authorization"))
        if not check_password(token):
            logger.warning(
                "Rejected unauthenticated request",
                extra={
                    "security_event": "auth_failed",
                    "path": request.url.path,
                    "method": request.method,
                    "client_ip": request.client.host if request.client else "unknown",
                },
            )
            return unauthorized_response()

        return await call_next(request)
