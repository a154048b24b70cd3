"""
auth/service.py -- Orchestrates the launcher authentication flow.

authenticate:  credentials -> ban -> 2FA (if enabled) -> token -> last login -> audit
verify:        token lookup -> ban -> last login -> audit
logout:        clear token (idempotent) -> audit if a token was cleared

Each step either passes or raises an AuthError, which ends the flow right
there -- later steps never run. Token issuance is the first step that writes
session state, so any failed check leaves the user's current token untouched.

The service holds no per-request state; everything mutable lives in the store.
The feature flag is handed in at construction and enforced by the HTTP layer
(auth.dependencies.require_auth_api) before a request ever reaches here.

Layer rule: no imports from api/. core/ is used only by from_settings().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.audit import AuditLogger
from auth.bans import BanGate
from auth.credentials import CredentialVerifier
from auth.errors import AuthError, InvalidToken
from auth.models import AuditAction, User
from auth.store import UserStore
from auth.tokens import TokenIssuer
from auth.two_factor import TOTP, TwoFactorOutcome, TwoFactorVerifier
from core.config import Settings

logger = logging.getLogger("gameauth.auth")


@dataclass
class AuthResult:
    """A successful authenticate or verify: the user and their current token."""

    user: User
    token: str


class AuthenticationService:
    def __init__(
        self,
        store: UserStore,
        credentials: CredentialVerifier,
        bans: BanGate,
        two_factor: TwoFactorVerifier,
        tokens: TokenIssuer,
        audit: AuditLogger,
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.credentials = credentials
        self.bans = bans
        self.two_factor = two_factor
        self.tokens = tokens
        self.audit = audit
        self.enabled = enabled

    @classmethod
    def from_settings(cls, store: UserStore, settings: Settings) -> "AuthenticationService":
        """Wire the default collaborators around store using settings."""
        return cls(
            store=store,
            credentials=CredentialVerifier(store),
            bans=BanGate(),
            two_factor=TwoFactorVerifier(store, settings.secret_key, TOTP(window=settings.totp_window)),
            tokens=TokenIssuer(
                store,
                token_length=settings.access_token_length,
                max_attempts=settings.token_issue_attempts,
            ),
            audit=AuditLogger(store),
            enabled=settings.auth_api_enabled,
        )

    def authenticate(self, identifier: str, password: str, code: str | None, ip: str | None) -> AuthResult:
        """Log a player in and issue them a fresh access token.

        Raises InvalidCredentials, UserBanned, Missing2FA or Invalid2FA.
        """
        try:
            user = self.credentials.verify(identifier, password)
            self.bans.check(user)
            outcome = self.two_factor.require(user, code)
        except AuthError as exc:
            logger.info("Authentication refused (%s) from %s", exc.reason, ip)
            raise

        token = self.tokens.issue(user)
        self.store.update_last_login(user.id, ip)

        two_factor = "off" if outcome is TwoFactorOutcome.NOT_REQUIRED else "on"
        self.audit.record(user.id, AuditAction.LOGIN, {"ip": ip, "2fa": two_factor})
        logger.info("User %s authenticated from %s (2fa=%s)", user.id, ip, two_factor)

        # Re-read so the profile reflects what the store holds (e.g. a game_id
        # assigned by a concurrent first login).
        return AuthResult(user=self.store.get_by_id(user.id) or user, token=token)

    def verify(self, token: str, ip: str | None) -> AuthResult:
        """Return the profile of the user holding token.

        Raises InvalidToken or UserBanned. The token itself is not rotated.
        """
        user = self.store.get_by_access_token(token)
        if user is None:
            logger.info("Verification refused (invalid_token) from %s", ip)
            raise InvalidToken()
        self.bans.check(user)

        user.last_login_at = self.store.update_last_login(user.id, ip)
        user.last_login_ip = ip
        self.audit.record(user.id, AuditAction.VERIFIED, {"ip": ip})
        return AuthResult(user=user, token=token)

    def logout(self, token: str, ip: str | None = None) -> None:
        """Invalidate token. Always succeeds, whether or not anyone held it."""
        user_id = self.tokens.invalidate(token)
        if user_id is not None:
            self.audit.record(user_id, AuditAction.LOGOUT, {"ip": ip})
            logger.info("User %s logged out from %s", user_id, ip)
