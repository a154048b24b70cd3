"""
auth/two_factor.py -- TOTP and single-use recovery codes.

TOTP: RFC 6238 (HMAC-SHA1, 6 digits, 30-second period), compatible with
  Google Authenticator, Authy, etc. A configurable window of adjacent periods
  absorbs clock drift. Codes are compared with hmac.compare_digest.

Recovery codes: shown once at enrolment, stored as HMAC-SHA256(SECRET_KEY, code).
  An attacker who reads the DB cannot use or reverse the codes without also
  knowing SECRET_KEY. A matched code is
  consumed with UserStore.consume_recovery_code(), whose row count tells us
  whether we or a concurrent request removed it. Only the remover proceeds.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
import string
import struct
import time
from enum import Enum
from urllib.parse import quote

from auth.errors import Invalid2FA, Missing2FA
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("gameauth.auth")

_RECOVERY_ALPHABET = string.ascii_letters + string.digits
RECOVERY_CODE_COUNT = 8


class TwoFactorOutcome(Enum):
    NOT_REQUIRED = "not_required"
    TOTP = "totp"
    RECOVERY_CODE = "recovery_code"


# ---------------------------------------------------------------------------
# TOTP primitive
# ---------------------------------------------------------------------------


class TOTP:
    """Time-based one-time passwords (RFC 6238)."""

    def __init__(self, digits: int = 6, period: int = 30, window: int = 1, issuer: str = "GameAuth") -> None:
        self.digits = digits
        self.period = period
        self.window = window
        self.issuer = issuer

    @staticmethod
    def generate_secret() -> str:
        """Return a random 160-bit secret, base32-encoded without padding."""
        return base64.b32encode(secrets.token_bytes(20)).decode("ascii").rstrip("=")

    def at(self, secret: str, timestamp: int) -> str:
        """Return the code valid at the given Unix timestamp."""
        key = base64.b32decode(secret.upper() + "=" * (-len(secret) % 8))
        counter = timestamp // self.period
        digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()

        # Dynamic truncation
        offset = digest[-1] & 0x0F
        code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
        return str(code % (10**self.digits)).zfill(self.digits)

    def now(self, secret: str) -> str:
        return self.at(secret, int(time.time()))

    def verify(self, secret: str, code: str, timestamp: int | None = None) -> bool:
        """Return True if code matches the current period or one within the window."""
        if len(code) != self.digits or not (code.isascii() and code.isdigit()):
            return False
        if timestamp is None:
            timestamp = int(time.time())
        for step in range(-self.window, self.window + 1):
            if hmac.compare_digest(code, self.at(secret, timestamp + step * self.period)):
                return True
        return False

    def provisioning_uri(self, secret: str, account_name: str) -> str:
        """Return the otpauth:// URI authenticator apps scan as a QR code."""
        label = quote(f"{self.issuer}:{account_name}")
        return (
            f"otpauth://totp/{label}"
            f"?secret={secret}"
            f"&issuer={quote(self.issuer)}"
            f"&digits={self.digits}"
            f"&period={self.period}"
        )


# ---------------------------------------------------------------------------
# Recovery codes
# ---------------------------------------------------------------------------


def generate_recovery_code() -> str:
    """Return a code shaped like XXXXXXXXXX-XXXXXXXXXX (two blocks of 10 alphanumerics)."""
    blocks = ("".join(secrets.choice(_RECOVERY_ALPHABET) for _ in range(10)) for _ in range(2))
    return "-".join(blocks)


def hash_recovery_code(code: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode(), code.encode("utf-8"), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------


class TwoFactorVerifier:
    """Checks the second factor for users that have one enabled."""

    def __init__(self, store: UserStore, secret_key: str, totp: TOTP | None = None) -> None:
        self.store = store
        self.secret_key = secret_key
        self.totp = totp or TOTP()

    def require(self, user: User, code: str | None) -> TwoFactorOutcome:
        """Validate code for user.

        Users without a TOTP secret pass straight through. Otherwise a missing
        or empty code raises Missing2FA; anything else that is neither the
        current TOTP nor an unused recovery code raises Invalid2FA. That
        includes a whitespace-only code, which the client did send.
        """
        if not user.has_two_factor:
            return TwoFactorOutcome.NOT_REQUIRED

        if not code:
            raise Missing2FA()
        # Pasted codes often carry a stray newline.
        code = code.strip()

        if self.totp.verify(user.two_factor_secret, code):
            return TwoFactorOutcome.TOTP

        if self._consume_recovery_code(user.id, code):
            logger.info("Recovery code used by user %s", user.id)
            return TwoFactorOutcome.RECOVERY_CODE

        raise Invalid2FA()

    def _consume_recovery_code(self, user_id: int, code: str) -> bool:
        candidate = hash_recovery_code(code, self.secret_key)
        for stored in self.store.get_recovery_codes(user_id):
            if hmac.compare_digest(candidate, stored.code_hash):
                # False here means a concurrent request consumed it first.
                return self.store.consume_recovery_code(stored.id)
        return False

    # ------------------------------------------------------------------
    # Enrolment
    # ------------------------------------------------------------------

    def enable(self, user_id: int) -> tuple[str, list[str]]:
        """Enable 2FA with a fresh secret and recovery-code set.

        Returns (secret, raw_recovery_codes). This is the only time the raw
        codes exist outside the user's hands.
        """
        secret = self.totp.generate_secret()
        codes = [generate_recovery_code() for _ in range(RECOVERY_CODE_COUNT)]
        self.store.set_two_factor(user_id, secret, [hash_recovery_code(c, self.secret_key) for c in codes])
        return secret, codes

    def disable(self, user_id: int) -> None:
        self.store.clear_two_factor(user_id)
