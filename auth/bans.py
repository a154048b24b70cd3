"""auth/bans.py -- Ban gate applied on every authenticate and verify."""

from __future__ import annotations

from auth.errors import UserBanned
from auth.models import User


class BanGate:
    """Pure predicate over user.ban.

    Must run after the user is identified (credentials or token) and before
    any 2FA prompt or token issuance: a banned player with the right password
    and no code gets user_banned, never 2fa.
    """

    def check(self, user: User) -> None:
        if user.ban is not None:
            raise UserBanned(user.ban.reason)
