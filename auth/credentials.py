"""
auth/credentials.py -- Password hashing and credential verification.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt's cost factor is
  the right choice for low-entropy secrets, and checkpw compares in constant
  time. Passwords longer than 72 bytes are rejected by bcrypt 4.x+;
  verify_password() treats that as a mismatch.

Enumeration: CredentialVerifier.verify() always runs exactly one bcrypt check.
  When the identifier matches nobody, it checks against _DUMMY_HASH instead of
  returning early, so "no such user" and "wrong password" cost the same time
  and raise the same InvalidCredentials.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

from auth.errors import InvalidCredentials
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("gameauth.auth")

DEFAULT_ROUNDS = 12


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or over-long password
        return False


# Computed once at module load so the first unknown-user attempt is not
# measurably slower than later ones. Same cost as real hashes.
_DUMMY_HASH: str = hash_password("gameauth_timing_dummy")


class CredentialVerifier:
    """Resolves a login identifier to a user and checks the password."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def verify(self, identifier: str, password: str) -> User:
        """Return the matching user, or raise InvalidCredentials.

        identifier is an email when it contains "@", otherwise a user name.
        """
        user = self.store.get_by_identifier(identifier)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentials()
        if not verify_password(password, user.password):
            raise InvalidCredentials()
        return user
