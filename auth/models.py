"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the service do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass
class BanRecord:
    """An account-level ban. Active while removed_at is None."""

    user_id: int
    reason: str
    id: int | None = None
    created_at: str | None = None
    removed_at: str | None = None


@dataclass
class User:
    """A player account as seen by the auth API.

    name and email are both login identifiers: an identifier containing "@"
    is matched against email, anything else against name.

    password is the bcrypt hash, never the plaintext.

    access_token is the single active launcher session. Issuing a new token
    replaces it; logout clears it.

    game_id is the permanent UUID handed to game servers. It is assigned on
    the first successful authentication and never changes afterwards.

    ban is loaded by the store alongside the user row and is None unless an
    active ban exists. Recovery codes are not carried here -- they are read
    through UserStore.get_recovery_codes() only when a second factor is checked.
    """

    name: str
    email: str
    password: str
    id: int | None = None
    role: str = "member"
    access_token: str | None = None
    two_factor_secret: str | None = None  # base32; None = 2FA disabled
    game_id: str | None = None
    last_login_ip: str | None = None
    last_login_at: str | None = None
    created_at: str | None = None
    ban: BanRecord | None = None

    @property
    def is_banned(self) -> bool:
        return self.ban is not None

    @property
    def has_two_factor(self) -> bool:
        return bool(self.two_factor_secret)


@dataclass
class RecoveryCode:
    """A stored single-use 2FA recovery code.

    code_hash is HMAC-SHA256(SECRET_KEY, raw_code). The raw code is shown once
    at enrolment and never persisted. Using a code deletes its row.
    """

    user_id: int
    code_hash: str
    id: int | None = None


class AuditAction(str, Enum):
    LOGIN = "users.auth.api.login"
    VERIFIED = "users.auth.api.verified"
    LOGOUT = "users.auth.api.logout"


@dataclass(frozen=True)
class AuditEntry:
    """An immutable record of one authentication event."""

    user_id: int
    action: AuditAction
    data: dict[str, Any] = field(default_factory=dict)
    target_id: int | None = None
    id: int | None = None
    created_at: str | None = None
