"""
auth/audit.py -- Best-effort audit trail of authentication events.

A failed audit write is logged and dropped. It must never turn a successful
login into an error: by the time we record, the token has already been issued
and handed to the caller's response.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from auth.models import AuditAction, AuditEntry
from auth.store import UserStore

logger = logging.getLogger("gameauth.audit")


class AuditLogger:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def record(self, user_id: int, action: AuditAction, data: dict[str, Any] | None = None) -> AuditEntry | None:
        """Append an entry. Returns the stored entry, or None if the write failed."""
        entry = AuditEntry(user_id=user_id, action=action, data=dict(data or {}))
        try:
            return self.store.add_action_log(entry)
        except SQLAlchemyError:
            logger.exception("Failed to write audit entry %s for user %s", action.value, user_id)
            return None

    def entries(self, user_id: int, limit: int = 50) -> list[AuditEntry]:
        return self.store.get_action_logs(user_id, limit=limit)
