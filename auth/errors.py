"""
auth/errors.py -- Expected authentication failures.

Every AuthError is a normal, caller-recoverable outcome: the service raises it
to short-circuit the remaining checks, and the API layer renders it verbatim
as the response envelope. reason and message are the wire values existing
launcher clients match on -- do not change them.

HTTP status codes are NOT defined here. They belong to the transport and are
mapped in api/routes/auth.py.

TokenIssueError is different: it means the store could not persist a token
after all retries, and surfaces as a generic internal error.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    status = "error"
    reason = "auth_error"
    message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def payload(self) -> dict[str, Any]:
        """Return the response envelope for this failure."""
        return {"status": self.status, "reason": self.reason, "message": self.message}


class FeatureDisabled(AuthError):
    reason = "feature_disabled"
    message = "Auth API is not enabled"


class InvalidCredentials(AuthError):
    """Unknown identifier or wrong password. Deliberately indistinguishable."""

    reason = "invalid_credentials"
    message = "Invalid credentials"


class UserBanned(AuthError):
    reason = "user_banned"
    message = "User banned"

    def __init__(self, ban_reason: str) -> None:
        super().__init__()
        self.ban_reason = ban_reason

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["ban_reason"] = self.ban_reason
        return data


class Missing2FA(AuthError):
    # "pending": the client should prompt for a code and retry.
    status = "pending"
    reason = "2fa"
    message = "Missing 2FA code"


class Invalid2FA(AuthError):
    reason = "invalid_2fa"
    message = "Invalid 2FA code"


class InvalidToken(AuthError):
    reason = "invalid_token"
    message = "Invalid token"


class TokenIssueError(RuntimeError):
    """Raised when no unique access token could be stored within the retry budget."""
