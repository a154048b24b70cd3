"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names follow the wire format existing launchers already speak -- the
login identifier is posted as "email" even when it is a user name.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AuthenticateRequest(BaseModel):
    """Request body for POST /api/auth/authenticate."""

    email: str = Field(min_length=1, max_length=255, description="Email address or user name.")
    # bcrypt only looks at the first 72 bytes; 255 keeps inputs bounded.
    password: str = Field(min_length=1, max_length=255)
    code: Optional[str] = Field(default=None, max_length=64, description="TOTP or recovery code.")


class AccessTokenRequest(BaseModel):
    """Request body for POST /api/auth/verify and POST /api/auth/logout."""

    access_token: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AuthenticatedUser(BaseModel):
    """Public profile returned by authenticate and verify.

    uuid is the permanent game identifier game servers key player data on.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    id: int
    username: str
    email: str
    uuid: Optional[str]
    role: str
    banned: bool
    created_at: Optional[str]
    access_token: str

    @classmethod
    def from_user(cls, user: User, token: str) -> "AuthenticatedUser":
        return cls(
            id=user.id,
            username=user.name,
            email=user.email,
            uuid=user.game_id,
            role=user.role,
            banned=user.is_banned,
            created_at=user.created_at,
            access_token=token,
        )


class StatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "success"


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    status: str = "error"
    reason: str
    message: str
    ban_reason: Optional[str] = None
    errors: Optional[dict[str, list[str]]] = None

    def body(self) -> dict[str, Any]:
        """Dump without the optional fields that do not apply."""
        return self.model_dump(exclude_none=True)


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
