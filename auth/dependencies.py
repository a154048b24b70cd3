"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth API.

require_auth_api() is the feature gate. It is attached to the whole auth
router, so FastAPI runs it before the body model is validated: with the
flag off, every call gets the same "not enabled" answer and no credential,
token or store check happens at all. A body that cannot be decoded as JSON
is rejected before any dependency runs; api/main.py's validation handler
applies the same gate to those.

get_auth_service() hands route handlers the service built in the lifespan.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import FeatureDisabled
from auth.service import AuthenticationService


def get_auth_service(request: Request) -> AuthenticationService:
    return request.app.state.auth_service


def require_auth_api(request: Request) -> None:
    """Raise FeatureDisabled unless the auth API is switched on."""
    if not get_auth_service(request).enabled:
        raise FeatureDisabled()


def client_ip(request: Request) -> str | None:
    """Return the peer address of the request, or None if unknown.

    Proxy headers are not trusted here; run uvicorn with --proxy-headers
    behind a reverse proxy so request.client reflects the real client.
    """
    return request.client.host if request.client else None
