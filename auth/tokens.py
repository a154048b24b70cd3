"""
auth/tokens.py -- Opaque access tokens and game identifiers.

Access tokens: 128 characters drawn with secrets.choice from [A-Za-z0-9],
  about 762 bits of entropy. Tokens are opaque -- nothing is encoded in them,
  and the only way to validate one is a store lookup. The store's UNIQUE
  constraint guarantees no two users ever share a token; a collision (which
  in practice means a broken RNG) is retried with a fresh token a bounded
  number of times, then surfaced as TokenIssueError.

Game IDs: uuid4 (backed by os.urandom), assigned on first issue and never
  replaced. assign_game_id() is conditional in SQL, so two racing first
  logins still agree on a single value.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid

from sqlalchemy.exc import IntegrityError

from auth.errors import TokenIssueError
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("gameauth.auth")

_TOKEN_ALPHABET = string.ascii_letters + string.digits

DEFAULT_TOKEN_LENGTH = 128


def generate_access_token(length: int = DEFAULT_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


class TokenIssuer:
    """Issues and invalidates access tokens."""

    def __init__(self, store: UserStore, token_length: int = DEFAULT_TOKEN_LENGTH, max_attempts: int = 3) -> None:
        self.store = store
        self.token_length = token_length
        self.max_attempts = max_attempts

    def issue(self, user: User) -> str:
        """Persist a new token for user, replacing any previous one, and return it.

        Assigns a game_id first if the user has none. user is updated in place
        with the new token (and game_id when this call assigned it).
        """
        if user.game_id is None:
            game_id = str(uuid.uuid4())
            if self.store.assign_game_id(user.id, game_id):
                user.game_id = game_id
                logger.info("Assigned game id to user %s", user.id)

        for attempt in range(1, self.max_attempts + 1):
            token = generate_access_token(self.token_length)
            try:
                self.store.set_access_token(user.id, token)
            except IntegrityError:
                logger.warning("Access token collision for user %s (attempt %d/%d)", user.id, attempt, self.max_attempts)
                continue
            user.access_token = token
            return token

        raise TokenIssueError(f"Could not store a unique access token after {self.max_attempts} attempts")

    def invalidate(self, token: str) -> int | None:
        """Clear token wherever it is held. Returns the affected user's ID, or None.

        Not an error when nobody holds the token -- logout is idempotent.
        """
        return self.store.clear_access_token(token)
