"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_ban / _row_to_action_log
are the mappers. The service layer never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity (each method is its own short transaction):
  access_token  UNIQUE column. Two users can never hold the same token; a
                colliding write raises IntegrityError for the caller to retry.
  game_id       assign_game_id() updates only WHERE game_id IS NULL, so a
                value, once set, is never overwritten -- even by a racing login.
  recovery code consume_recovery_code() is a DELETE by id. Exactly one
                concurrent caller sees rowcount == 1; everyone else lost.

SQLite treats NULLs as distinct in UNIQUE constraints, which is exactly what
access_token needs: any number of users may be logged out (NULL token).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import AuditAction, AuditEntry, BanRecord, RecoveryCode, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("role", String(30), nullable=False, server_default="member"),
    Column("access_token", String(255), unique=True),  # NULL = logged out
    Column("two_factor_secret", Text),  # base32, NULL = 2FA disabled
    Column("game_id", String(36)),  # UUID, write-once
    Column("last_login_ip", String(45)),
    Column("last_login_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_bans = Table(
    "bans",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("reason", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("removed_at", String(32)),  # NULL = active
)

_recovery_codes = Table(
    "recovery_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("code_hash", String(64), nullable=False),  # HMAC-SHA256 hex
)

_action_logs = Table(
    "action_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("action", String(100), nullable=False),
    Column("target_id", Integer),
    Column("data", Text),  # JSON object
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_email(identifier: str) -> bool:
    return "@" in identifier


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, bans, recovery codes and the action log.

    Usage:
        store = UserStore()
        uid = store.create_user(User(name="alice", email="alice@example.com", password=hash_password("secret123")))
        user = store.get_by_identifier("alice@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the name or email is taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    password=user.password,
                    role=user.role,
                    two_factor_secret=user.two_factor_secret,
                    game_id=user.game_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        return self._get_user(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        return self._get_user(_users.c.email == email)

    def get_by_name(self, name: str) -> User | None:
        """Look up a user by exact name (case-sensitive). Returns None if not found."""
        return self._get_user(_users.c.name == name)

    def get_by_identifier(self, identifier: str) -> User | None:
        """Resolve a login identifier: email if it contains "@", name otherwise."""
        if _is_email(identifier):
            return self.get_by_email(identifier)
        return self.get_by_name(identifier)

    def get_by_access_token(self, token: str) -> User | None:
        """Look up the user holding token. O(1) via the UNIQUE index."""
        return self._get_user(_users.c.access_token == token)

    def _get_user(self, clause) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(clause)).fetchone()
            if row is None:
                return None
            ban_row = conn.execute(_active_ban_query(row.id)).fetchone()
        return _row_to_user(row, _row_to_ban(ban_row) if ban_row is not None else None)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def assign_game_id(self, user_id: int, game_id: str) -> bool:
        """Set game_id only if it is still NULL.

        Returns True if this call assigned it, False if the user already had one
        (or does not exist). An existing game_id is never overwritten.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.game_id.is_(None)))
                .values(game_id=game_id)
            )
            conn.commit()
        return result.rowcount > 0

    def set_access_token(self, user_id: int, token: str) -> bool:
        """Replace the user's access token. The previous token stops matching immediately.

        Raises sqlalchemy.exc.IntegrityError if another user already holds token.
        Returns False if user_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(access_token=token))
            conn.commit()
        return result.rowcount > 0

    def clear_access_token(self, token: str) -> int | None:
        """Clear token from whichever user holds it and return that user's ID.

        Returns None when no user holds the token. Both steps share one
        transaction so a concurrent re-issue cannot be cleared by mistake.
        """
        with self.engine.begin() as conn:
            user_id = conn.execute(select(_users.c.id).where(_users.c.access_token == token)).scalar()
            if user_id is None:
                return None
            conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.access_token == token))
                .values(access_token=None)
            )
        return user_id

    def update_last_login(self, user_id: int, ip: str | None) -> str:
        """Stamp last_login_ip / last_login_at and return the timestamp written."""
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_ip=ip, last_login_at=now))
            conn.commit()
        return now

    # ------------------------------------------------------------------
    # Bans
    # ------------------------------------------------------------------

    def create_ban(self, user_id: int, reason: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_bans.insert().values(user_id=user_id, reason=reason, created_at=_now_iso()))
            conn.commit()
            return result.inserted_primary_key[0]

    def remove_ban(self, user_id: int) -> bool:
        """Lift every active ban on the user. Returns True if one was lifted."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _bans.update()
                .where((_bans.c.user_id == user_id) & (_bans.c.removed_at.is_(None)))
                .values(removed_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def get_active_ban(self, user_id: int) -> BanRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_active_ban_query(user_id)).fetchone()
        return _row_to_ban(row) if row is not None else None

    # ------------------------------------------------------------------
    # Two-factor
    # ------------------------------------------------------------------

    def set_two_factor(self, user_id: int, secret: str, code_hashes: list[str]) -> None:
        """Store a new TOTP secret and replace the whole recovery-code set."""
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(two_factor_secret=secret))
            conn.execute(_recovery_codes.delete().where(_recovery_codes.c.user_id == user_id))
            if code_hashes:
                conn.execute(
                    _recovery_codes.insert(),
                    [{"user_id": user_id, "code_hash": h} for h in code_hashes],
                )

    def clear_two_factor(self, user_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(two_factor_secret=None))
            conn.execute(_recovery_codes.delete().where(_recovery_codes.c.user_id == user_id))

    def get_recovery_codes(self, user_id: int) -> list[RecoveryCode]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _recovery_codes.select().where(_recovery_codes.c.user_id == user_id).order_by(_recovery_codes.c.id)
            ).fetchall()
        return [RecoveryCode(id=r.id, user_id=r.user_id, code_hash=r.code_hash) for r in rows]

    def consume_recovery_code(self, code_id: int) -> bool:
        """Delete a recovery code. Returns True only for the caller that actually removed it."""
        with self.engine.connect() as conn:
            result = conn.execute(_recovery_codes.delete().where(_recovery_codes.c.id == code_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Action log
    # ------------------------------------------------------------------

    def add_action_log(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry and return it with its ID and timestamp filled in."""
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _action_logs.insert().values(
                    user_id=entry.user_id,
                    action=entry.action.value,
                    target_id=entry.target_id,
                    data=json.dumps(entry.data),
                    created_at=created_at,
                )
            )
            conn.commit()
            entry_id = result.inserted_primary_key[0]
        return AuditEntry(
            user_id=entry.user_id,
            action=entry.action,
            data=dict(entry.data),
            target_id=entry.target_id,
            id=entry_id,
            created_at=created_at,
        )

    def get_action_logs(self, user_id: int, limit: int = 50) -> list[AuditEntry]:
        """Return the user's audit entries, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _action_logs.select()
                .where(_action_logs.c.user_id == user_id)
                .order_by(_action_logs.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_action_log(r) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    def close(self) -> None:
        self.engine.dispose()


def _active_ban_query(user_id: int):
    return (
        _bans.select()
        .where((_bans.c.user_id == user_id) & (_bans.c.removed_at.is_(None)))
        .order_by(_bans.c.id.desc())
        .limit(1)
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, ban: BanRecord | None) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password=row.password,
        role=row.role,
        access_token=row.access_token,
        two_factor_secret=row.two_factor_secret,
        game_id=row.game_id,
        last_login_ip=row.last_login_ip,
        last_login_at=row.last_login_at,
        created_at=row.created_at,
        ban=ban,
    )


def _row_to_ban(row) -> BanRecord:
    return BanRecord(
        id=row.id,
        user_id=row.user_id,
        reason=row.reason,
        created_at=row.created_at,
        removed_at=row.removed_at,
    )


def _row_to_action_log(row) -> AuditEntry:
    data: dict[str, Any] = json.loads(row.data) if row.data else {}
    return AuditEntry(
        id=row.id,
        user_id=row.user_id,
        action=AuditAction(row.action),
        target_id=row.target_id,
        data=data,
        created_at=row.created_at,
    )
