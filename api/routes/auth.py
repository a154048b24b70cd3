"""
api/routes/auth.py -- Launcher authentication endpoints.

Routes:
  POST /api/auth/authenticate   -- credentials (+ optional 2FA code) -> profile + new access token
  POST /api/auth/verify         -- access token -> profile
  POST /api/auth/logout         -- invalidate access token; always succeeds

Every route depends on require_auth_api, so a disabled API answers 400 before
the body is even validated.

Failures are raised as AuthError subclasses by the service and rendered by
the exception handler in api/main.py using AUTH_ERROR_STATUS below. The
status codes and reason strings are wire-compatible with existing launcher
clients -- do not change them.

Handlers are plain `def`: the store is synchronous, so FastAPI runs them in
its thread pool.

Security:
  Cache-Control: no-store on every response that carries a token or profile.
  The same invalid_credentials error is returned for an unknown identifier
  and a wrong password (see auth/credentials.py for timing equalization).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import AccessTokenRequest, AuthenticatedUser, AuthenticateRequest, StatusResponse
from auth.dependencies import client_ip, get_auth_service, require_auth_api
from auth.errors import (
    AuthError,
    FeatureDisabled,
    Invalid2FA,
    InvalidCredentials,
    InvalidToken,
    Missing2FA,
    UserBanned,
)
from auth.service import AuthenticationService, AuthResult

AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    FeatureDisabled: 400,
    InvalidCredentials: 422,
    UserBanned: 403,
    Missing2FA: 422,
    Invalid2FA: 422,
    InvalidToken: 401,
}


def status_for(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in AUTH_ERROR_STATUS:
            return AUTH_ERROR_STATUS[cls]
    return 400


router = APIRouter(dependencies=[Depends(require_auth_api)])


def _profile_response(result: AuthResult) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=AuthenticatedUser.from_user(result.user, result.token).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/authenticate", response_model=AuthenticatedUser)
def authenticate(
    request: Request,
    body: AuthenticateRequest,
    service: AuthenticationService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email or user name and password; return a new access token.

    Issuing a token invalidates the user's previous one.
    """
    result = service.authenticate(body.email, body.password, body.code, client_ip(request))
    return _profile_response(result)


@router.post("/auth/verify", response_model=AuthenticatedUser)
def verify(
    request: Request,
    body: AccessTokenRequest,
    service: AuthenticationService = Depends(get_auth_service),
) -> JSONResponse:
    """Return the profile of the user holding the access token."""
    result = service.verify(body.access_token, client_ip(request))
    return _profile_response(result)


@router.post("/auth/logout", response_model=StatusResponse)
def logout(
    request: Request,
    body: AccessTokenRequest,
    service: AuthenticationService = Depends(get_auth_service),
) -> StatusResponse:
    """Invalidate the access token if it exists."""
    service.logout(body.access_token, client_ip(request))
    return StatusResponse()
